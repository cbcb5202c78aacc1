"""
Stores package for AppVault.

Re-exports the store interfaces and concrete stores, plus a small registry so
the CLI can build the configured backend by name.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from appvault.config import Settings, get_settings
from appvault.stores.abstract import (
    AbstractRemoteStore,
    ErrorHandler,
    RemoteStore,
    SnapshotHandler,
    Unsubscribe,
)
from appvault.stores.memory import MemoryStore
from appvault.stores.postgres import PostgresStore


def _store_factories(settings: Settings) -> Dict[str, Callable[[], AbstractRemoteStore]]:
    """Registry of available store backends."""
    return {
        "postgres": lambda: PostgresStore(),
        "memory": lambda: MemoryStore(
            asset_base_url=settings.asset_base_url,
            asset_namespace=settings.asset_namespace,
        ),
    }


def available_backends() -> List[str]:
    """List available store backend names."""
    return sorted(_store_factories(get_settings()).keys())


def build_store(backend: Optional[str] = None) -> AbstractRemoteStore:
    settings = get_settings()
    name = backend or settings.store_backend
    factories = _store_factories(settings)
    if name not in factories:
        raise ValueError(f"Unknown store backend '{name}'. Available: {', '.join(sorted(factories))}")
    return factories[name]()


__all__ = [
    # Abstracts
    "AbstractRemoteStore",
    "RemoteStore",
    "SnapshotHandler",
    "ErrorHandler",
    "Unsubscribe",
    # Concrete stores
    "MemoryStore",
    "PostgresStore",
    # Registry
    "available_backends",
    "build_store",
]
