"""
In-process store with the same semantics as the remote stores.

Snapshots are delivered asynchronously through a per-subscription queue, so
listeners observe writes on a later loop iteration, like a real remote
listener. Used by the test suite and for local demos.
"""

from __future__ import annotations

import asyncio
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from appvault.domain.models import AppRecord
from appvault.errors import SubscriptionError, UploadError, WriteError
from appvault.image_pipeline import build_asset_path
from appvault.stores.abstract import (
    AbstractRemoteStore,
    ErrorHandler,
    SnapshotHandler,
    Unsubscribe,
)
from appvault.utils.logging import get_logger

log = get_logger(__name__)

_ID_ALPHABET = string.ascii_letters + string.digits
_ID_LENGTH = 20

_Event = Union[List[AppRecord], SubscriptionError]


@dataclass
class _Subscription:
    queue: "asyncio.Queue[_Event]" = field(default_factory=asyncio.Queue)
    task: Optional["asyncio.Task[None]"] = None


class MemoryStore(AbstractRemoteStore):
    """
    Dictionary-backed store. Timestamps come from a strictly increasing clock.
    """

    name: str = "memory"
    error_prefix: str = "Memory"

    def __init__(
        self,
        asset_base_url: str = "memory://assets",
        asset_namespace: str = "app-previews",
    ) -> None:
        self._asset_base_url = asset_base_url.rstrip("/")
        self._asset_namespace = asset_namespace
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._assets: Dict[str, Tuple[str, bytes]] = {}
        self._subscriptions: List[_Subscription] = []
        self._last_ts: Optional[datetime] = None

    @property
    def assets(self) -> Mapping[str, Tuple[str, bytes]]:
        return MappingProxyType(self._assets)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _now(self) -> datetime:
        ts = datetime.now(timezone.utc)
        if self._last_ts is not None and ts <= self._last_ts:
            ts = self._last_ts + timedelta(microseconds=1)
        self._last_ts = ts
        return ts

    def _new_id(self) -> str:
        while True:
            candidate = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))
            if candidate not in self._docs:
                return candidate

    def snapshot(self) -> List[AppRecord]:
        """Current collection ordered by creation time, oldest first."""
        records = [AppRecord(id=doc_id, **doc) for doc_id, doc in self._docs.items()]
        return sorted(records, key=lambda record: (record.created_at, record.id))

    def _snapshot_event(self) -> _Event:
        try:
            return self.snapshot()
        except ValidationError as exc:
            log.warning(
                "Malformed document in collection",
                extra={"store": self.name, "error": str(exc)},
            )
            return SubscriptionError(
                self._error(f"Malformed document: {exc.error_count()} invalid field(s)")
            )

    def _publish(self) -> None:
        event = self._snapshot_event()
        for sub in list(self._subscriptions):
            sub.queue.put_nowait(event)

    def fail_subscriptions(self, message: str) -> None:
        """Terminate every live listener with a SubscriptionError."""
        error = SubscriptionError(self._error(message))
        for sub in list(self._subscriptions):
            sub.queue.put_nowait(error)

    def subscribe_ordered(
        self, on_snapshot: SnapshotHandler, on_error: ErrorHandler
    ) -> Unsubscribe:
        sub = _Subscription()
        self._subscriptions.append(sub)
        sub.queue.put_nowait(self._snapshot_event())
        sub.task = asyncio.get_running_loop().create_task(
            self._pump(sub, on_snapshot, on_error)
        )
        log.debug("Subscription opened", extra={"store": self.name})

        def unsubscribe() -> None:
            self._drop(sub)
            if sub.task is not None and not sub.task.done():
                sub.task.cancel()

        return unsubscribe

    def _drop(self, sub: _Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)
            log.debug("Subscription closed", extra={"store": self.name})

    async def _pump(
        self, sub: _Subscription, on_snapshot: SnapshotHandler, on_error: ErrorHandler
    ) -> None:
        while True:
            event = await sub.queue.get()
            if isinstance(event, SubscriptionError):
                self._drop(sub)
                await on_error(event)
                return
            await on_snapshot(event, not event)

    async def create(self, fields: Mapping[str, Any]) -> str:
        await asyncio.sleep(0)
        doc = self._writable(fields, complete=True)
        doc_id = self._new_id()
        self._docs[doc_id] = {**doc, "created_at": self._now(), "updated_at": None}
        self._publish()
        return doc_id

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:
        await asyncio.sleep(0)
        doc = self._writable(fields)
        if record_id not in self._docs:
            raise WriteError(self._error(f"No document to update: {record_id}"))
        self._docs[record_id].update(doc, updated_at=self._now())
        self._publish()

    async def delete(self, record_id: str) -> None:
        await asyncio.sleep(0)
        if self._docs.pop(record_id, None) is not None:
            self._publish()

    async def batch_create(
        self, records: Sequence[Mapping[str, Any]], only_if_empty: bool = False
    ) -> List[str]:
        await asyncio.sleep(0)
        if only_if_empty and self._docs:
            log.info("Batch skipped, collection not empty", extra={"store": self.name})
            return []
        docs = [self._writable(fields, complete=True) for fields in records]
        ids = []
        for doc in docs:
            doc_id = self._new_id()
            self._docs[doc_id] = {**doc, "created_at": self._now(), "updated_at": None}
            ids.append(doc_id)
        if ids:
            self._publish()
        return ids

    async def upload_asset(
        self, content: bytes, content_type: str, filename: str = ""
    ) -> str:
        await asyncio.sleep(0)
        if not content:
            raise UploadError(self._error("Refusing to upload an empty file"))
        path = build_asset_path(filename, self._asset_namespace)
        self._assets[path] = (content_type, bytes(content))
        return f"{self._asset_base_url}/{path}"

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            self._drop(sub)
            if sub.task is not None and not sub.task.done():
                sub.task.cancel()


__all__ = ["MemoryStore"]
