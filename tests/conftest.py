"""
Pytest configuration for AppVault.

Provides fixtures for:
- In-memory stores, plus instrumented variants for seeding and failure tests
- Settings and DSN for the PostgreSQL integration tests
"""

from __future__ import annotations

import os
from typing import Any, List, Mapping, Sequence

import pytest

from appvault.config import Settings
from appvault.errors import WriteError
from appvault.stores.memory import MemoryStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


class RecordingStore(MemoryStore):
    """MemoryStore that remembers every batch and single-record write."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.batch_calls: List[List[Mapping[str, Any]]] = []
        self.create_calls: List[Mapping[str, Any]] = []
        self.update_calls: List[tuple] = []

    async def batch_create(
        self, records: Sequence[Mapping[str, Any]], only_if_empty: bool = False
    ) -> List[str]:
        self.batch_calls.append(list(records))
        return await super().batch_create(records, only_if_empty=only_if_empty)

    async def create(self, fields: Mapping[str, Any]) -> str:
        self.create_calls.append(dict(fields))
        return await super().create(fields)

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:
        self.update_calls.append((record_id, dict(fields)))
        await super().update(record_id, fields)


class RejectingStore(RecordingStore):
    """Every single-record write is rejected with a provider-prefixed message."""

    message = "Firebase: Missing or insufficient permissions."

    async def create(self, fields: Mapping[str, Any]) -> str:
        raise WriteError(self.message)

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:
        raise WriteError(self.message)

    async def delete(self, record_id: str) -> None:
        raise WriteError(self.message)


@pytest.fixture
def memory_store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def rejecting_store() -> RejectingStore:
    return RejectingStore()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "appvault"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return test_settings.dsn
