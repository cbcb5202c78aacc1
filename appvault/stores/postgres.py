"""
PostgreSQL-backed catalog store.

Documents live in one table per collection, ordered by a server-assigned
`created_at` (``clock_timestamp()``, so rows of one batch still get distinct,
increasing values). A statement-level trigger sends ``NOTIFY <collection>_changes``
after every write; each subscription keeps a dedicated ``LISTEN`` connection and
re-reads the whole ordered collection through the pool on every notification.

Assets are kept in ``<collection>_assets`` as bytea and addressed through
`asset_base_url`; serving them is left to whatever fronts that URL.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Mapping, Optional, Sequence, Set, Type

import psycopg
from psycopg import AsyncConnection, sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from pydantic import ValidationError

from appvault.config import get_settings
from appvault.domain.models import AppRecord, Category
from appvault.errors import CatalogError, SubscriptionError, UploadError, WriteError
from appvault.image_pipeline import build_asset_path
from appvault.infrastructure.db_factory import (
    build_dsn,
    create_async_pool,
    get_async_connection,
)
from appvault.stores.abstract import (
    AbstractRemoteStore,
    ErrorHandler,
    SnapshotHandler,
    Unsubscribe,
)
from appvault.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    id TEXT PRIMARY KEY DEFAULT replace(gen_random_uuid()::text, '-', ''),
    name TEXT NOT NULL CHECK (btrim(name) <> ''),
    url TEXT NOT NULL CHECK (btrim(url) <> ''),
    description TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL CHECK (category IN ({categories})),
    image TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
    updated_at TIMESTAMPTZ
);
CREATE INDEX IF NOT EXISTS {order_index} ON {table} (created_at, id);
CREATE TABLE IF NOT EXISTS {assets} (
    path TEXT PRIMARY KEY,
    content_type TEXT NOT NULL,
    data BYTEA NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE OR REPLACE FUNCTION {notify_fn}() RETURNS trigger AS $$
BEGIN
    PERFORM pg_notify({channel}, TG_OP);
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;
DROP TRIGGER IF EXISTS {trigger} ON {table};
CREATE TRIGGER {trigger}
    AFTER INSERT OR UPDATE OR DELETE ON {table}
    FOR EACH STATEMENT EXECUTE FUNCTION {notify_fn}();
"""

_COLUMNS = ("id", "name", "url", "description", "category", "image", "created_at", "updated_at")


class PostgresStore(AbstractRemoteStore):
    """
    Ordered document store on PostgreSQL with LISTEN/NOTIFY change feeds.

    Call `open()` (or use ``async with``) before any other operation.
    """

    name: str = "postgres"
    error_prefix: str = "Postgres"

    def __init__(
        self,
        dsn_override: Optional[str] = None,
        *,
        collection: Optional[str] = None,
        asset_namespace: Optional[str] = None,
        asset_base_url: Optional[str] = None,
        pool_min_size: Optional[int] = None,
        pool_max_size: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self._dsn = build_dsn(dsn_override)
        self._collection = collection or settings.collection_name
        self._asset_namespace = asset_namespace or settings.asset_namespace
        self._asset_base_url = (asset_base_url or settings.asset_base_url).rstrip("/")
        self._pool_min_size = pool_min_size
        self._pool_max_size = pool_max_size
        self._pool: Optional[AsyncConnectionPool] = None
        self._listeners: Set["asyncio.Task[None]"] = set()

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def channel(self) -> str:
        return f"{self._collection}_changes"

    @property
    def _table(self) -> sql.Identifier:
        return sql.Identifier(self._collection)

    @property
    def _assets_table(self) -> sql.Identifier:
        return sql.Identifier(f"{self._collection}_assets")

    async def open(self) -> None:
        if self._pool is None:
            self._pool = await create_async_pool(
                self._dsn, min_size=self._pool_min_size, max_size=self._pool_max_size
            )
            log.info("Store opened", extra={"store": self.name, "collection": self._collection})

    async def close(self) -> None:
        listeners = list(self._listeners)
        for task in listeners:
            task.cancel()
        if listeners:
            await asyncio.gather(*listeners, return_exceptions=True)
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            log.info("Store closed", extra={"store": self.name, "collection": self._collection})

    def _require_pool(self, error_cls: Type[CatalogError]) -> AsyncConnectionPool:
        if self._pool is None:
            raise error_cls(self._error("Store is not open"))
        return self._pool

    async def ensure_schema(self) -> None:
        """Create the collection, asset table, ordering index and change trigger."""
        pool = self._require_pool(WriteError)
        query = sql.SQL(_SCHEMA).format(
            table=self._table,
            assets=self._assets_table,
            order_index=sql.Identifier(f"{self._collection}_created_at_idx"),
            notify_fn=sql.Identifier(f"{self._collection}_notify"),
            trigger=sql.Identifier(f"{self._collection}_changes_trg"),
            channel=sql.Literal(self.channel),
            categories=sql.SQL(", ").join(sql.Literal(c.value) for c in Category),
        )
        async with pool.connection() as conn:
            await conn.execute(query)
        log.info("Schema ensured", extra={"collection": self._collection})

    # ── Subscription ─────────────────────────────────────────────────────────

    def subscribe_ordered(
        self, on_snapshot: SnapshotHandler, on_error: ErrorHandler
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._listen(on_snapshot, on_error))
        self._listeners.add(task)
        task.add_done_callback(self._listeners.discard)

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def _fetch_ordered(self) -> List[AppRecord]:
        pool = self._require_pool(SubscriptionError)
        query = sql.SQL("SELECT {} FROM {} ORDER BY created_at ASC, id ASC").format(
            sql.SQL(", ").join(map(sql.Identifier, _COLUMNS)), self._table
        )
        async with pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query)
                rows = await cur.fetchall()
        return [AppRecord.model_validate(row) for row in rows]

    async def _listen(self, on_snapshot: SnapshotHandler, on_error: ErrorHandler) -> None:
        try:
            conn: AsyncConnection = await get_async_connection(self._dsn)
            async with conn:
                await conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.channel)))
                log.debug("Listening", extra={"channel": self.channel})
                records = await self._fetch_ordered()
                await on_snapshot(records, not records)
                async for notify in conn.notifies():
                    log.debug("Change notification", extra={"operation": notify.payload})
                    records = await self._fetch_ordered()
                    await on_snapshot(records, not records)
        except SubscriptionError as exc:
            await on_error(exc)
        except (psycopg.Error, OSError) as exc:
            log.warning("Listener failed", extra={"channel": self.channel, "error": str(exc)})
            await on_error(SubscriptionError(self._error(exc)))
        except ValidationError as exc:
            log.warning("Malformed document", extra={"channel": self.channel, "error": str(exc)})
            await on_error(
                SubscriptionError(
                    self._error(f"Malformed document: {exc.error_count()} invalid field(s)")
                )
            )

    # ── Writes ───────────────────────────────────────────────────────────────

    def _insert_query(self, columns: Sequence[str]) -> sql.Composed:
        return sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING id").format(
            self._table,
            sql.SQL(", ").join(map(sql.Identifier, columns)),
            sql.SQL(", ").join([sql.Placeholder()] * len(columns)),
        )

    async def create(self, fields: Mapping[str, Any]) -> str:
        doc = self._writable(fields, complete=True)
        pool = self._require_pool(WriteError)
        try:
            async with pool.connection() as conn:
                cur = await conn.execute(self._insert_query(list(doc)), list(doc.values()))
                row = await cur.fetchone()
        except psycopg.Error as exc:
            raise WriteError(self._error(exc)) from exc
        return row[0]

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:
        doc = self._writable(fields)
        pool = self._require_pool(WriteError)
        assignments = [
            sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder())
            for column in doc
        ]
        assignments.append(sql.SQL("updated_at = clock_timestamp()"))
        query = sql.SQL("UPDATE {} SET {} WHERE id = %s RETURNING id").format(
            self._table, sql.SQL(", ").join(assignments)
        )
        try:
            async with pool.connection() as conn:
                cur = await conn.execute(query, [*doc.values(), record_id])
                row = await cur.fetchone()
        except psycopg.Error as exc:
            raise WriteError(self._error(exc)) from exc
        if row is None:
            raise WriteError(self._error(f"No document to update: {record_id}"))

    async def delete(self, record_id: str) -> None:
        pool = self._require_pool(WriteError)
        query = sql.SQL("DELETE FROM {} WHERE id = %s").format(self._table)
        try:
            async with pool.connection() as conn:
                await conn.execute(query, (record_id,))
        except psycopg.Error as exc:
            raise WriteError(self._error(exc)) from exc

    async def batch_create(
        self, records: Sequence[Mapping[str, Any]], only_if_empty: bool = False
    ) -> List[str]:
        docs = [self._writable(fields, complete=True) for fields in records]
        pool = self._require_pool(WriteError)
        ids: List[str] = []
        try:
            async with pool.connection() as conn:
                async with conn.transaction():
                    if only_if_empty:
                        # Serializes concurrent conditional batches and blocks inserts meanwhile.
                        await conn.execute(
                            sql.SQL("LOCK TABLE {} IN SHARE ROW EXCLUSIVE MODE").format(self._table)
                        )
                        cur = await conn.execute(
                            sql.SQL("SELECT EXISTS (SELECT 1 FROM {})").format(self._table)
                        )
                        (exists,) = await cur.fetchone()
                        if exists:
                            log.info(
                                "Batch skipped, collection not empty",
                                extra={"collection": self._collection},
                            )
                            return []
                    for doc in docs:
                        cur = await conn.execute(self._insert_query(list(doc)), list(doc.values()))
                        row = await cur.fetchone()
                        ids.append(row[0])
        except psycopg.Error as exc:
            raise WriteError(self._error(exc)) from exc
        return ids

    async def upload_asset(
        self, content: bytes, content_type: str, filename: str = ""
    ) -> str:
        if not content:
            raise UploadError(self._error("Refusing to upload an empty file"))
        pool = self._require_pool(UploadError)
        path = build_asset_path(filename, self._asset_namespace)
        query = sql.SQL("INSERT INTO {} (path, content_type, data) VALUES (%s, %s, %s)").format(
            self._assets_table
        )
        try:
            async with pool.connection() as conn:
                await conn.execute(query, (path, content_type, content))
        except psycopg.Error as exc:
            raise UploadError(self._error(exc)) from exc
        log.info("Asset uploaded", extra={"path": path, "bytes": len(content)})
        return f"{self._asset_base_url}/{path}"


__all__ = ["PostgresStore"]
