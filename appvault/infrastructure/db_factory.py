"""
Database connection factory utilities for AppVault.

Builds async PostgreSQL connections and pools from settings. Nothing here is
global: every store owns the pool and connections it creates and closes them
itself.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from appvault.config import get_settings


def build_dsn(dsn_override: Optional[str] = None) -> str:
    """Compose a DSN string from settings unless one is given."""
    return dsn_override or get_settings().dsn


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, OSError)),
    reraise=True,
)
async def get_async_connection(dsn: Optional[str] = None, autocommit: bool = True) -> AsyncConnection:
    """
    Acquire a dedicated asynchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Used for long-lived listeners; prefer the pool for short writes.

    Returns
    -------
    AsyncConnection
        A new psycopg async connection.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return await AsyncConnection.connect(build_dsn(dsn), autocommit=autocommit)


async def create_async_pool(
    dsn: Optional[str] = None,
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
) -> AsyncConnectionPool:
    """
    Create and open an asynchronous connection pool.

    Parameters
    ----------
    dsn : str | None
        Connection string; defaults to the configured database.
    min_size : int | None
        Minimum number of idle connections to keep.
    max_size : int | None
        Maximum total connections in the pool.

    Returns
    -------
    AsyncConnectionPool
        An opened pool; the caller must close it.
    """
    settings = get_settings()
    pool = AsyncConnectionPool(
        conninfo=build_dsn(dsn),
        min_size=min_size or settings.db_pool_min_size,
        max_size=max_size or settings.db_pool_max_size,
        open=False,
    )
    await pool.open()
    return pool


__all__ = [
    "build_dsn",
    "get_async_connection",
    "create_async_pool",
]
