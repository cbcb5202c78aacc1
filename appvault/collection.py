"""
Synchronized collection: the local mirror of the remote `apps` collection.

Lifecycle:
    store = MemoryStore()
    collection = AppCollection(store)
    collection.start()                 # one subscription for the component's lifetime
    await collection.wait_until_ready()
    record_id = await collection.create({"name": "X", "url": "x.io"})
    collection.stop()                  # idempotent

The mirror is replaced wholesale on every snapshot and never edited locally;
create/update/delete only talk to the store and the next snapshot brings the
result back. The first empty snapshot of a session triggers a one-time seed of
the default catalog, written as a conditional batch so concurrent sessions do
not seed twice.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from appvault.domain.catalog import SEED_CATALOG
from appvault.domain.models import (
    FILTER_ALL,
    WRITABLE_FIELDS,
    AppDraft,
    AppRecord,
    Category,
    LocalAsset,
)
from appvault.errors import (
    CatalogError,
    SubscriptionError,
    UploadError,
    WriteError,
    to_display_error,
)
from appvault.image_pipeline import (
    is_persistent_image_reference,
    normalize_url,
    optimize_image_url,
    resolve_display_image,
)
from appvault.stores.abstract import RemoteStore, Unsubscribe
from appvault.utils.logging import get_logger

log = get_logger(__name__)

AppData = Union[AppDraft, Mapping[str, Any]]
ChangeCallback = Callable[["AppCollection"], None]


class CollectionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class AppCollection:
    """
    Local mirror of the remote collection plus CRUD round-trips.

    Parameters
    ----------
    store : RemoteStore
        The injected store adapter.
    seed : sequence of AppDraft | None
        Records written once when the collection is first seen empty.
        Defaults to the built-in catalog; pass ``[]`` to disable seeding.
    on_change : callable | None
        Called with the collection after every mirror replacement or state change.
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        seed: Optional[Sequence[AppDraft]] = None,
        on_change: Optional[ChangeCallback] = None,
    ) -> None:
        self._store = store
        self._seed = list(SEED_CATALOG if seed is None else seed)
        self._on_change = on_change
        self._records: Tuple[AppRecord, ...] = ()
        self._state = CollectionState.LOADING
        self._seed_attempted = False
        self._started = False
        self._unsubscribe: Optional[Unsubscribe] = None
        self._changed = asyncio.Condition()
        self.last_error: Optional[CatalogError] = None

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Open the subscription. Must run inside an event loop; repeats are no-ops."""
        if self._started:
            log.debug("Collection already started", extra={"store": self._store.name})
            return
        self._started = True
        self._unsubscribe = self._store.subscribe_ordered(
            self._handle_snapshot, self._handle_error
        )
        log.info("Collection subscribed", extra={"store": self._store.name})

    def stop(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
            log.info("Collection unsubscribed", extra={"store": self._store.name})

    async def __aenter__(self) -> "AppCollection":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ── Snapshot handling ────────────────────────────────────────────────────

    async def _handle_snapshot(self, records: List[AppRecord], is_empty: bool) -> None:
        if is_empty and self._seed and not self._seed_attempted:
            # Set before the await so a second empty snapshot cannot seed again.
            self._seed_attempted = True
            await self._seed_catalog()
            return
        self._replace(records)
        await self._notify()

    async def _seed_catalog(self) -> None:
        fields = [{**draft.to_fields(), "url": normalize_url(draft.url)} for draft in self._seed]
        log.info("Collection empty, seeding default catalog", extra={"records": len(fields)})
        try:
            ids = await self._store.batch_create(fields, only_if_empty=True)
        except Exception as exc:  # noqa: BLE001
            log.exception("Seeding failed", extra={"store": self._store.name})
            self.last_error = to_display_error(exc)
            self._state = CollectionState.ERROR
            await self._notify()
            return
        log.info("Seed written", extra={"records": len(ids)})

    async def _handle_error(self, error: SubscriptionError) -> None:
        log.error(
            "Subscription failed",
            extra={"store": self._store.name, "error": str(error)},
        )
        self.last_error = error
        self._state = CollectionState.ERROR
        await self._notify()

    def _replace(self, records: Sequence[AppRecord]) -> None:
        unique: Dict[str, AppRecord] = {}
        for record in records:
            if record.id in unique:
                log.warning("Duplicate id in snapshot", extra={"record_id": record.id})
                continue
            unique[record.id] = record
        self._records = tuple(unique.values())
        self._state = CollectionState.READY
        log.debug("Mirror replaced", extra={"records": len(self._records)})

    async def _notify(self) -> None:
        # Report before the first await; waiters resume as soon as this yields.
        if self._on_change is not None:
            try:
                self._on_change(self)
            except Exception:  # noqa: BLE001
                log.exception("on_change callback failed")
        async with self._changed:
            self._changed.notify_all()

    # ── Waiting ──────────────────────────────────────────────────────────────

    async def wait_for(
        self,
        predicate: Callable[["AppCollection"], bool],
        timeout: Optional[float] = None,
    ) -> None:
        """
        Block until `predicate(self)` holds, re-checking after every snapshot.

        Raises
        ------
        asyncio.TimeoutError
            If `timeout` seconds pass first.
        """
        async with self._changed:
            await asyncio.wait_for(self._changed.wait_for(lambda: predicate(self)), timeout)

    async def wait_until_ready(self, timeout: Optional[float] = None) -> CollectionState:
        await self.wait_for(lambda c: c.state is not CollectionState.LOADING, timeout)
        return self._state

    # ── Accessors ────────────────────────────────────────────────────────────

    @property
    def state(self) -> CollectionState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state is CollectionState.LOADING

    @property
    def records(self) -> Tuple[AppRecord, ...]:
        return self._records

    def get(self, record_id: str) -> Optional[AppRecord]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def by_category(self, category: Union[Category, str, None] = None) -> List[AppRecord]:
        if category is None or category == FILTER_ALL:
            return list(self._records)
        wanted = Category(category)
        return [record for record in self._records if record.category is wanted]

    def category_count(self) -> int:
        return len({record.category for record in self._records})

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AppRecord]:
        return iter(self._records)

    # ── CRUD ─────────────────────────────────────────────────────────────────

    async def _resolve_image(self, image: str, url: str, upload: Optional[LocalAsset]) -> str:
        if upload is None:
            return resolve_display_image(image, url)
        try:
            return await self._store.upload_asset(
                upload.content, upload.effective_content_type, upload.filename
            )
        except Exception as exc:
            raise to_display_error(exc, fallback=UploadError) from exc

    @staticmethod
    def _reject_unknown(data: AppData) -> None:
        if isinstance(data, AppDraft):
            return
        unknown = set(data) - set(WRITABLE_FIELDS) - {"upload"}
        if unknown:
            raise WriteError(f"Unknown fields: {', '.join(sorted(unknown))}")

    async def _draft_fields(self, draft: AppDraft) -> Dict[str, str]:
        url = normalize_url(draft.url)
        image = await self._resolve_image(draft.image, url, draft.upload)
        return {**draft.to_fields(), "url": url, "image": image}

    async def _partial_fields(self, changes: Mapping[str, Any]) -> Dict[str, Any]:
        fields = dict(changes)
        upload = fields.pop("upload", None)
        if "name" in fields and not str(fields["name"] or "").strip():
            raise ValueError("name must not be blank")
        if "url" in fields:
            fields["url"] = normalize_url(fields["url"] or "")
            if not fields["url"]:
                raise ValueError("url must not be blank")
        if "category" in fields:
            fields["category"] = Category(fields["category"]).value
        if upload is not None:
            asset = upload if isinstance(upload, LocalAsset) else LocalAsset.model_validate(upload)
            fields["image"] = await self._resolve_image("", "", asset)
        elif "image" in fields:
            image = fields["image"] or ""
            if is_persistent_image_reference(image):
                fields["image"] = optimize_image_url(image)
            elif "url" in fields:
                fields["image"] = resolve_display_image("", fields["url"])
            else:
                # An ephemeral preview without a URL to fall back on is not stored.
                del fields["image"]
        return fields

    async def create(self, data: AppData) -> str:
        """
        Create a record and return its store-assigned id.

        An `upload` on the draft is stored first and takes priority over a
        generated screenshot. Store failures are re-raised with the provider
        prefix removed from the message.
        """
        self._reject_unknown(data)
        draft = data if isinstance(data, AppDraft) else AppDraft.model_validate(data)
        fields = await self._draft_fields(draft)
        try:
            record_id = await self._store.create(fields)
        except Exception as exc:
            raise to_display_error(exc) from exc
        log.info("Record created", extra={"record_id": record_id, "app_name": fields["name"]})
        return record_id

    async def update(
        self,
        record_id: str,
        changes: AppData,
        *,
        previous: Optional[AppRecord] = None,
    ) -> None:
        """
        Merge `changes` into a record.

        Unchanged fields default to `previous` (or the mirror's copy), so the
        URL and image are resolved exactly as on create. With no known previous
        record only the given fields are written.
        """
        self._reject_unknown(changes)
        base = previous or self.get(record_id)
        if isinstance(changes, AppDraft):
            fields = await self._draft_fields(changes)
        elif base is not None:
            draft = AppDraft.model_validate({**base.fields(), **dict(changes)})
            fields = await self._draft_fields(draft)
        else:
            fields = await self._partial_fields(changes)
        try:
            await self._store.update(record_id, fields)
        except Exception as exc:
            raise to_display_error(exc) from exc
        log.info("Record updated", extra={"record_id": record_id, "fields": sorted(fields)})

    async def delete(self, record_id: str) -> None:
        try:
            await self._store.delete(record_id)
        except Exception as exc:
            raise to_display_error(exc) from exc
        log.info("Record deleted", extra={"record_id": record_id})


__all__ = ["AppCollection", "CollectionState"]
