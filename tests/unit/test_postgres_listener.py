from __future__ import annotations

import asyncio
from typing import Any, List

import pytest

from appvault.domain.models import AppRecord
from appvault.errors import SubscriptionError
from appvault.stores import postgres


class _FakeConnection:
    def __init__(self) -> None:
        self.executed: List[Any] = []

    async def __aenter__(self) -> "_FakeConnection":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def execute(self, query: Any, params: Any = None) -> None:
        self.executed.append(query)


@pytest.mark.asyncio
async def test_malformed_row_reports_subscription_error(monkeypatch) -> None:
    conn = _FakeConnection()

    async def connect(dsn=None, autocommit=True):
        return conn

    async def fetch_malformed() -> List[AppRecord]:
        row = {"id": "a", "name": "", "url": "https://x.io", "category": "Gaming", "created_at": None}
        return [AppRecord.model_validate(row)]

    monkeypatch.setattr(postgres, "get_async_connection", connect)
    store = postgres.PostgresStore("postgresql://unused/appvault", collection="apps")
    monkeypatch.setattr(store, "_fetch_ordered", fetch_malformed)

    snapshots: List[Any] = []
    errors: List[SubscriptionError] = []
    done = asyncio.Event()

    async def on_snapshot(records, is_empty) -> None:
        snapshots.append(records)

    async def on_error(error: SubscriptionError) -> None:
        errors.append(error)
        done.set()

    store.subscribe_ordered(on_snapshot, on_error)
    await asyncio.wait_for(done.wait(), timeout=1)

    assert snapshots == []
    assert len(errors) == 1
    assert str(errors[0]).startswith("Postgres: Malformed document")
    assert len(conn.executed) == 1
    await store.close()
