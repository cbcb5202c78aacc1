"""
Remote store interfaces for AppVault.

A store mirrors an ordered document collection plus a blob bucket. Concrete
stores (PostgreSQL, in-memory) implement the RemoteStore protocol; the
synchronized collection depends on nothing else.
"""

from __future__ import annotations

import abc
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    List,
    Mapping,
    Protocol,
    Sequence,
    runtime_checkable,
)

from appvault.domain.models import WRITABLE_FIELDS, AppRecord, Category
from appvault.errors import SubscriptionError, WriteError

SnapshotHandler = Callable[[List[AppRecord], bool], Awaitable[None]]
ErrorHandler = Callable[[SubscriptionError], Awaitable[None]]
Unsubscribe = Callable[[], None]

_REQUIRED_FIELDS = ("name", "url")


@runtime_checkable
class RemoteStore(Protocol):
    """
    Contract every catalog store must implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    error_prefix : str
        Provider tag put in front of error messages (e.g. "Postgres").
    """

    name: str
    error_prefix: str

    async def open(self) -> None:
        ...

    async def close(self) -> None:
        ...

    def subscribe_ordered(
        self, on_snapshot: SnapshotHandler, on_error: ErrorHandler
    ) -> Unsubscribe:
        """
        Listen to the whole collection ordered by creation time, oldest first.

        `on_snapshot(records, is_empty)` receives the initial state and then a
        full replacement after every change. `on_error` is awaited once if the
        listener fails, which ends the subscription. The returned callable
        stops the listener and may be called more than once.
        """
        ...

    async def create(self, fields: Mapping[str, Any]) -> str:
        ...

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:
        ...

    async def delete(self, record_id: str) -> None:
        ...

    async def batch_create(
        self, records: Sequence[Mapping[str, Any]], only_if_empty: bool = False
    ) -> List[str]:
        """
        Create all `records` atomically and return their ids in order.

        With `only_if_empty`, nothing is written (and ``[]`` returned) when the
        collection already holds documents.
        """
        ...

    async def upload_asset(
        self, content: bytes, content_type: str, filename: str = ""
    ) -> str:
        """Store a blob under a fresh path and return its public URL."""
        ...


class AbstractRemoteStore(abc.ABC):
    """
    ABC helper for class-based stores.

    Subclasses set `name` and `error_prefix` and implement the abstract methods.
    """

    name: str
    error_prefix: str

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "AbstractRemoteStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _error(self, message: Any) -> str:
        return f"{self.error_prefix}: {message}"

    def _writable(self, fields: Mapping[str, Any], *, complete: bool = False) -> dict:
        """
        Validate writable document fields; reject anything else.

        With `complete` (creates), `name` and `url` are required and a missing
        `category` gets the default one.
        """
        unknown = set(fields) - set(WRITABLE_FIELDS)
        if unknown:
            raise WriteError(self._error(f"Unknown fields: {', '.join(sorted(unknown))}"))
        doc = {
            key: value.value if isinstance(value, Enum) else value
            for key, value in fields.items()
        }
        if complete:
            missing = [key for key in _REQUIRED_FIELDS if key not in doc]
            if missing:
                raise WriteError(self._error(f"Missing fields: {', '.join(missing)}"))
            doc.setdefault("category", Category.default().value)
        for key in ("name", "url", "description", "image"):
            if key not in doc:
                continue
            value = "" if doc[key] is None else doc[key]
            if not isinstance(value, str):
                raise WriteError(self._error(f"{key} must be text"))
            if key in _REQUIRED_FIELDS and not value.strip():
                raise WriteError(self._error(f"{key} must not be blank"))
            doc[key] = value
        if "category" in doc:
            try:
                doc["category"] = Category(doc["category"]).value
            except ValueError:
                raise WriteError(self._error(f"Unknown category: {doc['category']}")) from None
        return doc

    @abc.abstractmethod
    def subscribe_ordered(
        self, on_snapshot: SnapshotHandler, on_error: ErrorHandler
    ) -> Unsubscribe:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def create(self, fields: Mapping[str, Any]) -> str:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, record_id: str) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def batch_create(
        self, records: Sequence[Mapping[str, Any]], only_if_empty: bool = False
    ) -> List[str]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def upload_asset(
        self, content: bytes, content_type: str, filename: str = ""
    ) -> str:  # pragma: no cover
        raise NotImplementedError


__all__ = [
    "RemoteStore",
    "AbstractRemoteStore",
    "SnapshotHandler",
    "ErrorHandler",
    "Unsubscribe",
]
