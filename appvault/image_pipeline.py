"""
URL and preview-image pipeline.

Pure, deterministic helpers that turn user-entered URLs and image references
into display-ready preview URLs. `resolve_display_image` is the single entry
point used both when a record is written and when it is rendered, so a freshly
created record shows the same image a later reload computes.
"""

from __future__ import annotations

import re
import secrets
import string
import time
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

SCREENSHOT_SERVICE = "https://image.thum.io/get"
SCREENSHOT_MARKER = "image.thum.io/get/"
SCREENSHOT_WIDTH = 640
SCREENSHOT_CROP = 420

PROBE_SERVICE = "https://api.microlink.io/"

PHOTO_CDN_MARKER = "images.unsplash.com/"
PHOTO_CDN_PARAMS = (("w", "720"), ("q", "75"), ("auto", "format"))

EPHEMERAL_PREFIXES = ("blob:",)
DEFAULT_ASSET_EXTENSION = "png"

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_WIDTH_SEGMENT = re.compile(r"/width/\d+/")
_CROP_SEGMENT = re.compile(r"/crop/\d+/")

# Characters a browser's encodeURI leaves untouched, besides the unreserved set.
_URI_SAFE = ";,/?:@&=+$!*'()#"
_COMPONENT_SAFE = "!*'()"
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def normalize_url(raw: str = "") -> str:
    """
    Trim `raw` and make sure it carries an http(s) scheme.

    An existing scheme is kept as typed (``HTTP://x.io`` stays as is); anything
    else gets ``https://`` prepended. Blank input yields ``""``.
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        return ""
    return trimmed if _SCHEME.match(trimmed) else f"https://{trimmed}"


def is_persistent_image_reference(value: str = "") -> bool:
    """True for image references that stay valid after the session ends."""
    trimmed = (value or "").strip()
    return bool(trimmed) and not trimmed.lower().startswith(EPHEMERAL_PREFIXES)


def build_screenshot_url(url: str = "") -> str:
    normalized = normalize_url(url)
    if not normalized:
        return ""
    return (
        f"{SCREENSHOT_SERVICE}/width/{SCREENSHOT_WIDTH}/crop/{SCREENSHOT_CROP}"
        f"/noanimate/{quote(normalized, safe=_URI_SAFE)}"
    )


def build_probe_url(url: str = "") -> str:
    """Screenshot request that embeds the rendered image directly in the response."""
    normalized = normalize_url(url)
    if not normalized:
        return ""
    return (
        f"{PROBE_SERVICE}?url={quote(normalized, safe=_COMPONENT_SAFE)}"
        "&screenshot=true&meta=false&embed=screenshot.url"
    )


def _set_query_params(value: str) -> str:
    try:
        parts = urlsplit(value)
    except ValueError:
        return value
    if not (parts.scheme and parts.netloc):
        return value

    overrides = dict(PHOTO_CDN_PARAMS)
    query = []
    seen = set()
    for key, current in parse_qsl(parts.query, keep_blank_values=True):
        if key in overrides:
            if key in seen:
                continue
            seen.add(key)
            current = overrides[key]
        query.append((key, current))
    query.extend((key, val) for key, val in PHOTO_CDN_PARAMS if key not in seen)

    return urlunsplit(parts._replace(query=urlencode(query)))


def optimize_image_url(value: str = "") -> str:
    """
    Rewrite known image URLs for the card size.

    Screenshot-service URLs get the canonical width/crop segments; photo-CDN
    URLs get width, quality and auto-format query parameters. Everything else
    passes through.
    """
    trimmed = (value or "").strip()
    if not trimmed:
        return ""

    if SCREENSHOT_MARKER in trimmed:
        trimmed = _WIDTH_SEGMENT.sub(f"/width/{SCREENSHOT_WIDTH}/", trimmed, count=1)
        return _CROP_SEGMENT.sub(f"/crop/{SCREENSHOT_CROP}/", trimmed, count=1)

    if PHOTO_CDN_MARKER in trimmed:
        return _set_query_params(trimmed)

    return trimmed


def resolve_display_image(image: str = "", url: str = "") -> str:
    source = image if is_persistent_image_reference(image) else build_screenshot_url(url)
    return optimize_image_url(source)


def file_extension(filename: str = "") -> str:
    """Lowercased extension of `filename`, ``png`` when there is none."""
    _, dot, ext = (filename or "").rpartition(".")
    ext = ext.strip().lower()
    return ext if dot and ext else DEFAULT_ASSET_EXTENSION


def build_asset_path(filename: str = "", namespace: str = "app-previews") -> str:
    """
    Fresh blob path: ``<namespace>/<unix-ms>-<random-suffix>.<ext>``.
    """
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(8))
    return f"{namespace}/{int(time.time() * 1000)}-{suffix}.{file_extension(filename)}"


__all__ = [
    "normalize_url",
    "is_persistent_image_reference",
    "build_screenshot_url",
    "build_probe_url",
    "optimize_image_url",
    "resolve_display_image",
    "file_extension",
    "build_asset_path",
]
