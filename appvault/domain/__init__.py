"""
Domain package for AppVault.

Exports the record models, the category enumeration and the seed catalog.
Keep this package focused on data definitions and validation concerns.
"""

from appvault.domain.catalog import SEED_CATALOG
from appvault.domain.models import (
    FILTER_ALL,
    WRITABLE_FIELDS,
    AppDraft,
    AppRecord,
    Category,
    LocalAsset,
)

__all__ = [
    "AppDraft",
    "AppRecord",
    "Category",
    "LocalAsset",
    "FILTER_ALL",
    "WRITABLE_FIELDS",
    "SEED_CATALOG",
]
