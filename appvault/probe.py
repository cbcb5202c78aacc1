"""
Screenshot probe: ask the screenshot service to render a URL and confirm the
result is a loadable image before offering it as a record's preview.

Single attempt, no retry. Callers that want a soft result (to fall back to a
manual upload) use `probe_screenshot`, which never raises.
"""

from __future__ import annotations

from typing import Literal, Optional, TypedDict

import httpx

from appvault.config import get_settings
from appvault.errors import ProbeError
from appvault.image_pipeline import build_probe_url, normalize_url
from appvault.utils.logging import get_logger

log = get_logger(__name__)

_SIGNATURE_BYTES = 32

_IMAGE_SIGNATURES = (
    b"\x89PNG\r\n\x1a\n",
    b"\xff\xd8\xff",  # JPEG
    b"GIF87a",
    b"GIF89a",
    b"BM",  # BMP
    b"\x00\x00\x01\x00",  # ICO
)


class ProbeResult(TypedDict, total=False):
    image: str
    status: Literal["success", "error"]
    error: Optional[str]


def looks_like_image(head: bytes) -> bool:
    """True if `head` starts with a known raster signature or an SVG document."""
    if head.startswith(_IMAGE_SIGNATURES):
        return True
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return True
    text = head.lstrip().lower()
    return text.startswith(b"<svg") or text.startswith(b"<?xml")


async def _read_head(response: httpx.Response, size: int = _SIGNATURE_BYTES) -> bytes:
    head = b""
    async for chunk in response.aiter_bytes():
        head += chunk
        if len(head) >= size:
            break
    return head[:size]


async def fetch_screenshot(
    raw_url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Render `raw_url` through the screenshot service and return the image URL.

    Raises
    ------
    ProbeError
        For a blank URL (no request is made), a transport failure, an HTTP
        error status, a non-image response, or bytes that are not an image.
    """
    normalized = normalize_url(raw_url)
    if not normalized:
        raise ProbeError("A URL is required to fetch a screenshot.")

    probe_url = build_probe_url(normalized)
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            timeout=timeout or get_settings().probe_timeout_seconds,
            follow_redirects=True,
        )

    log.debug("Probing screenshot", extra={"target": normalized})
    try:
        async with client.stream("GET", probe_url) as response:
            if response.status_code >= 400:
                raise ProbeError(f"Screenshot service returned HTTP {response.status_code}.")
            content_type = response.headers.get("content-type", "").lower()
            if not content_type.startswith("image/"):
                raise ProbeError(f"Screenshot service returned {content_type or 'no content type'}.")
            head = await _read_head(response)
            if not looks_like_image(head):
                raise ProbeError("Screenshot service returned a malformed image.")
    except httpx.HTTPError as exc:
        raise ProbeError(f"Could not load screenshot: {exc}") from exc
    finally:
        if owns_client:
            await client.aclose()

    log.info("Screenshot ready", extra={"target": normalized})
    return probe_url


async def probe_screenshot(
    raw_url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> ProbeResult:
    """Soft-failure wrapper around `fetch_screenshot`."""
    try:
        image = await fetch_screenshot(raw_url, client=client, timeout=timeout)
    except ProbeError as exc:
        log.info("Screenshot unavailable", extra={"target": raw_url, "error": str(exc)})
        return ProbeResult(image="", status="error", error=str(exc))
    return ProbeResult(image=image, status="success", error=None)


__all__ = ["ProbeResult", "fetch_screenshot", "probe_screenshot", "looks_like_image"]
