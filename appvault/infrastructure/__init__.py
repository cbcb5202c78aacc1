"""
Infrastructure package for AppVault.

Centralizes database connectivity concerns (async connections, pooling).
Keep this layer focused on I/O and resource management, decoupled from
store and collection logic.
"""

from appvault.infrastructure.db_factory import (
    build_dsn,
    create_async_pool,
    get_async_connection,
)

__all__ = [
    "build_dsn",
    "create_async_pool",
    "get_async_connection",
]
