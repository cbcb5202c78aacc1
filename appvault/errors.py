"""
Error taxonomy for the catalog core.

- SubscriptionError: the live listener failed (transport or permission).
- WriteError: create/update/delete was rejected.
- UploadError: an asset upload failed; no record is written.
- ProbeError: a screenshot could not be generated or loaded (soft failure).

Store adapters prefix provider messages (e.g. "Postgres: ..."); callers that
show messages to people use `to_display_error` to strip that prefix.
"""

from __future__ import annotations

import re
from typing import Type

DEFAULT_WRITE_MESSAGE = "Could not save bookmark. Please try again."

_PROVIDER_PREFIX = re.compile(r"^(?:Firebase|Postgres|Memory):\s*", re.IGNORECASE)


class CatalogError(Exception):
    """Base class for every error raised by the catalog core."""


class SubscriptionError(CatalogError):
    pass


class WriteError(CatalogError):
    pass


class UploadError(CatalogError):
    pass


class ProbeError(CatalogError):
    pass


def strip_provider_prefix(message: str) -> str:
    """Remove a leading provider tag such as ``"Firebase: "`` from a message."""
    return _PROVIDER_PREFIX.sub("", message, count=1)


def to_display_error(
    exc: BaseException, fallback: Type[CatalogError] = WriteError
) -> CatalogError:
    """
    Rebuild `exc` with a human-readable message.

    Taxonomy errors keep their type; anything else becomes `fallback`.
    """
    message = strip_provider_prefix(str(exc)).strip() or DEFAULT_WRITE_MESSAGE
    cls = type(exc) if isinstance(exc, CatalogError) else fallback
    return cls(message)


__all__ = [
    "CatalogError",
    "SubscriptionError",
    "WriteError",
    "UploadError",
    "ProbeError",
    "DEFAULT_WRITE_MESSAGE",
    "strip_provider_prefix",
    "to_display_error",
]
