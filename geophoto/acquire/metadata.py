"""Parsing of raw Wikimedia Commons ``imageinfo`` records.

Commons exposes two metadata views per file: ``extmetadata`` (curated,
``{"Field": {"value": ...}}``) and ``metadata`` (raw EXIF as a list of
``{"name": ..., "value": ...}``). Capture year and GPS position are read
from the former first and the latter as a fallback.
"""

from __future__ import annotations

import html
import re
from datetime import date
from typing import Any

from geophoto.types import Coordinates

DATE_FIELDS = ("DateTimeOriginal", "DateTime", "DateTimeDigitized")

_YEAR_PATTERNS = (
    re.compile(r"(\d{4})-\d{2}-\d{2}"),  # YYYY-MM-DD
    re.compile(r"(\d{4}):\d{2}:\d{2}"),  # YYYY:MM:DD (EXIF)
    re.compile(r"(\d{4})"),
)

_DMS = re.compile(r"(\d+)°\s*(\d+)['′]\s*(\d+(?:\.\d+)?)[\"″]?\s*([NSEW])?")
_TAG = re.compile(r"<[^>]+>")


def parse_year(value: str, min_year: int = 1900, max_year: int | None = None) -> int | None:
    """First plausible 4-digit year in a free-form date string."""
    max_year = max_year or date.today().year
    for pattern in _YEAR_PATTERNS:
        match = pattern.search(value)
        if match:
            year = int(match.group(1))
            if min_year <= year <= max_year:
                return year
    return None


def parse_coordinate(value: Any) -> float | None:
    """Decimal degrees from a number, a decimal string, or a DMS string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    match = _DMS.search(value)
    if match:
        degrees, minutes, seconds, direction = match.groups()
        result = int(degrees) + int(minutes) / 60 + float(seconds) / 3600
        return -result if direction in ("S", "W") else result

    try:
        return float(value.strip())
    except ValueError:
        return None


def strip_html(value: str | None) -> str | None:
    """Plain text from the HTML fragments extmetadata uses for credits."""
    if not value:
        return None
    text = html.unescape(_TAG.sub("", value)).strip()
    return text or None


def extract_year(extmetadata: dict[str, Any], min_year: int = 1900) -> int | None:
    for name in DATE_FIELDS:
        value = _ext_value(extmetadata, name)
        if value:
            year = parse_year(str(value), min_year=min_year)
            if year:
                return year
    return None


def extract_coordinates(
    extmetadata: dict[str, Any], exif: list[dict[str, Any]] | None = None
) -> Coordinates | None:
    """GPS position, or None when absent, out of range, or exactly (0, 0)."""
    lat = lon = None
    lat_raw = _ext_value(extmetadata, "GPSLatitude")
    lon_raw = _ext_value(extmetadata, "GPSLongitude")
    if lat_raw is not None and lon_raw is not None:
        lat, lon = parse_coordinate(lat_raw), parse_coordinate(lon_raw)

    if (lat is None or lon is None) and exif:
        by_name = {item.get("name"): item.get("value") for item in exif if isinstance(item, dict)}
        if "GPSLatitude" in by_name:
            lat = parse_coordinate(by_name["GPSLatitude"])
        if "GPSLongitude" in by_name:
            lon = parse_coordinate(by_name["GPSLongitude"])

    if lat is None or lon is None:
        return None
    if lat == 0 and lon == 0:
        return None
    try:
        return Coordinates(lat, lon)
    except ValueError:
        return None


def clean_title(title: str) -> str:
    """Display title: no ``File:`` prefix, no common image extension."""
    title = re.sub(r"^File:", "", title)
    return re.sub(r"\.(jpe?g|png|gif|webp|tiff?|svg)$", "", title, flags=re.IGNORECASE)


def build_metadata_bag(page: dict[str, Any], min_year: int = 1900) -> dict[str, Any] | None:
    """Flatten one ``query.pages`` entry into the pipeline's raw metadata bag.

    Returns None when the page carries no image info or no URL.
    """
    infos = page.get("imageinfo") or []
    if not infos:
        return None
    info = infos[0]
    url = info.get("url")
    if not url:
        return None

    ext = info.get("extmetadata") or {}
    mime = info.get("mime") or _ext_value(ext, "MimeType")
    title = page.get("title", "")
    return {
        "url": url,
        "title": clean_title(title),
        "page_title": title,
        "mime_type": mime if mime else None,
        "year": extract_year(ext, min_year=min_year),
        "coordinates": extract_coordinates(ext, info.get("metadata")),
        "artist": strip_html(_ext_value(ext, "Artist")),
        "description": strip_html(_ext_value(ext, "ImageDescription")),
        "license": (
            _ext_value(ext, "LicenseShortName") or _ext_value(ext, "UsageTerms") or "Unknown License"
        ),
        "source": "Wikimedia Commons",
    }


def _ext_value(extmetadata: dict[str, Any], name: str) -> Any:
    entry = extmetadata.get(name)
    if isinstance(entry, dict):
        return entry.get("value")
    return None
