"""Image format detection.

Strategies run in priority order:
    1. ``mime-type``          declared MIME type from the data source
    2. ``url-extension``      file extension of the URL path
    3. ``http-content-type``  ``Content-Type`` of a HEAD request
    4. ``content-sniff``      header bytes identified with Pillow (opt-in)

The first verdict with confidence >= 0.8 wins; failing that, the first
verdict that names a format decides. Nothing conclusive means rejection.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlsplit

import httpx
from PIL import Image, UnidentifiedImageError

from geophoto.config import FormatConfig
from geophoto.types import DetectionMethod, FormatVerdict

logger = logging.getLogger(__name__)

DECISIVE_CONFIDENCE = 0.8

# Pillow format names that differ from ours
_PIL_FORMATS = {"JPEG": "jpeg", "PNG": "png", "WEBP": "webp", "GIF": "gif", "TIFF": "tiff", "BMP": "bmp"}


@runtime_checkable
class FormatDetector(Protocol):
    """Decides whether the image at an address is web-displayable."""

    async def detect(
        self,
        address: str,
        declared_mime_type: str | None,
        raw_metadata: dict[str, Any] | None,
    ) -> FormatVerdict: ...


Strategy = Callable[..., Awaitable[FormatVerdict]]


class StrategyFormatDetector:
    """Satisfies :class:`FormatDetector` with a chain of detection strategies.

    Args:
        config: Supported/rejected format tables and probe settings.
        client: Shared HTTP client for the network strategies. When omitted,
            one is created lazily and closed by :meth:`aclose`.
    """

    def __init__(self, config: FormatConfig | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.config = config or FormatConfig()
        self._client = client
        self._owns_client = client is None
        self._strategies: list[Strategy] = [
            self._by_mime_type,
            self._by_url_extension,
            self._by_content_type,
        ]
        if self.config.sniff_content:
            self._strategies.append(self._by_content_sniff)

    async def detect(
        self,
        address: str,
        declared_mime_type: str | None = None,
        raw_metadata: dict[str, Any] | None = None,
    ) -> FormatVerdict:
        if not address or not isinstance(address, str):
            return FormatVerdict(
                is_valid=False,
                confidence=1.0,
                detection_method=DetectionMethod.input_validation,
                rejection_reason="Invalid URL provided",
            )

        for strategy in self._strategies:
            try:
                verdict = await strategy(address, declared_mime_type)
            except httpx.HTTPError as exc:
                logger.debug("Format strategy %s failed for %s: %s", strategy.__name__, address, exc)
                continue

            if verdict.confidence >= DECISIVE_CONFIDENCE:
                return verdict
            if verdict.detected_format:
                return self._decide(verdict.detected_format, verdict)

        return FormatVerdict(
            is_valid=False,
            confidence=0.0,
            detection_method=DetectionMethod.unknown,
            rejection_reason="Unable to determine image format",
        )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _by_mime_type(self, address: str, declared_mime_type: str | None) -> FormatVerdict:
        method = DetectionMethod.mime_type
        if not declared_mime_type:
            return FormatVerdict(
                is_valid=False, confidence=0.0, detection_method=method,
                rejection_reason="No MIME type available",
            )
        fmt = self.config.format_for_mime(declared_mime_type)
        if fmt is None:
            return FormatVerdict(
                is_valid=False, confidence=0.8, detection_method=method,
                detected_mime_type=declared_mime_type, rejection_reason="Unknown MIME type",
            )
        return self._decide(fmt, FormatVerdict(
            is_valid=False, confidence=0.9, detection_method=method,
            detected_format=fmt, detected_mime_type=declared_mime_type,
        ))

    async def _by_url_extension(self, address: str, declared_mime_type: str | None) -> FormatVerdict:
        method = DetectionMethod.url_extension
        fmt = self.format_from_url(address)
        if fmt is None:
            return FormatVerdict(
                is_valid=False, confidence=0.0, detection_method=method,
                rejection_reason="No recognizable file extension",
            )
        return self._decide(fmt, FormatVerdict(
            is_valid=False, confidence=0.7, detection_method=method, detected_format=fmt,
        ))

    async def _by_content_type(self, address: str, declared_mime_type: str | None) -> FormatVerdict:
        method = DetectionMethod.http_content_type
        if not _is_http_url(address):
            return FormatVerdict(
                is_valid=False, confidence=0.0, detection_method=method,
                rejection_reason="Invalid URL for HTTP request",
            )
        client = self._get_client()
        try:
            response = await client.head(
                address, follow_redirects=True, timeout=self.config.http_timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.debug("HEAD request failed for %s: %s", address, exc)
            return FormatVerdict(
                is_valid=False, confidence=0.0, detection_method=method,
                rejection_reason="HTTP request failed",
            )

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not content_type:
            return FormatVerdict(
                is_valid=False, confidence=0.0, detection_method=method,
                rejection_reason="Unable to retrieve Content-Type header",
            )
        fmt = self.config.format_for_mime(content_type)
        if fmt is None:
            return FormatVerdict(
                is_valid=False, confidence=0.6, detection_method=method,
                detected_mime_type=content_type, rejection_reason="Unknown Content-Type",
            )
        return self._decide(fmt, FormatVerdict(
            is_valid=False, confidence=0.8, detection_method=method,
            detected_format=fmt, detected_mime_type=content_type,
        ))

    async def _by_content_sniff(self, address: str, declared_mime_type: str | None) -> FormatVerdict:
        method = DetectionMethod.content_sniff
        if not _is_http_url(address):
            return FormatVerdict(
                is_valid=False, confidence=0.0, detection_method=method,
                rejection_reason="Invalid URL for HTTP request",
            )
        client = self._get_client()
        response = await client.get(
            address,
            headers={"Range": f"bytes=0-{self.config.sniff_bytes - 1}"},
            follow_redirects=True,
            timeout=self.config.http_timeout_seconds,
        )
        response.raise_for_status()

        try:
            with Image.open(io.BytesIO(response.content)) as img:
                pil_format = img.format or ""
        except (UnidentifiedImageError, OSError):
            return FormatVerdict(
                is_valid=False, confidence=0.0, detection_method=method,
                rejection_reason="Image header not recognized",
            )

        fmt = _PIL_FORMATS.get(pil_format.upper())
        if fmt is None:
            return FormatVerdict(
                is_valid=False, confidence=0.6, detection_method=method,
                rejection_reason=f"Unrecognized image format {pil_format!r}",
            )
        return self._decide(fmt, FormatVerdict(
            is_valid=False, confidence=0.95, detection_method=method,
            detected_format=fmt, detected_mime_type=self.config.mime_for_format(fmt),
        ))

    # ------------------------------------------------------------------

    def format_from_url(self, url: str) -> str | None:
        """Format named by the URL path's extension, ignoring query and fragment."""
        try:
            path = urlsplit(url).path.lower()
        except ValueError:
            return None
        dot = path.rfind(".")
        if dot == -1 or "/" in path[dot:]:
            return None
        return self.config.format_for_extension(path[dot:])

    def _decide(self, fmt: str, verdict: FormatVerdict) -> FormatVerdict:
        """Fill in acceptance for a verdict that names a format."""
        supported = self.config.is_supported(fmt)
        return FormatVerdict(
            is_valid=supported,
            confidence=verdict.confidence,
            detection_method=verdict.detection_method,
            detected_format=fmt,
            detected_mime_type=verdict.detected_mime_type,
            rejection_reason=None if supported else self.config.rejection_reason(fmt),
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
        return self._client


def _is_http_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)
