"""
AppVault - a personal catalog of bookmarked web applications.

The core is a synchronized collection store:

- A local mirror of a remote, ordered document collection kept current by a
  live subscription
- A one-time seed of the default catalog when the collection is first empty
- Create/update/delete round-trips through an injectable store adapter
  (PostgreSQL with LISTEN/NOTIFY, or in-memory)
- A deterministic preview-image pipeline (screenshots, CDN resizing, uploads)
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from appvault.collection import AppCollection, CollectionState
from appvault.config import Settings, get_settings
from appvault.domain import SEED_CATALOG, AppDraft, AppRecord, Category, LocalAsset
from appvault.errors import (
    CatalogError,
    ProbeError,
    SubscriptionError,
    UploadError,
    WriteError,
)
from appvault.image_pipeline import (
    build_screenshot_url,
    is_persistent_image_reference,
    normalize_url,
    optimize_image_url,
    resolve_display_image,
)
from appvault.probe import fetch_screenshot, probe_screenshot
from appvault.stores import MemoryStore, PostgresStore, RemoteStore, build_store
from appvault.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Collection
    "AppCollection",
    "CollectionState",
    # Domain
    "AppDraft",
    "AppRecord",
    "Category",
    "LocalAsset",
    "SEED_CATALOG",
    # Errors
    "CatalogError",
    "ProbeError",
    "SubscriptionError",
    "UploadError",
    "WriteError",
    # Image pipeline
    "build_screenshot_url",
    "is_persistent_image_reference",
    "normalize_url",
    "optimize_image_url",
    "resolve_display_image",
    # Probe
    "fetch_screenshot",
    "probe_screenshot",
    # Stores
    "MemoryStore",
    "PostgresStore",
    "RemoteStore",
    "build_store",
    # Logging
    "configure_logging",
    "get_logger",
]
