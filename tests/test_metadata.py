"""Tests for geophoto.acquire.metadata."""

from __future__ import annotations

from datetime import date

import pytest

from geophoto.acquire.metadata import (
    build_metadata_bag,
    clean_title,
    extract_coordinates,
    extract_year,
    parse_coordinate,
    parse_year,
    strip_html,
)
from geophoto.types import Coordinates


def _ext(**fields) -> dict:
    return {name: {"value": value} for name, value in fields.items()}


class TestParseYear:
    @pytest.mark.parametrize(
        "value, year",
        [
            ("2015-06-01 10:00:00", 2015),
            ("2009:07:14 18:22:01", 2009),
            ("circa 1987", 1987),
            ("<time>1955</time>", 1955),
        ],
    )
    def test_formats(self, value, year):
        """ISO dates, EXIF dates, bare years and HTML-wrapped years."""
        assert parse_year(value) == year

    def test_before_min_year(self):
        assert parse_year("1850-01-01") is None

    def test_future_year(self):
        """Years after the current one are treated as bad data."""
        assert parse_year(f"{date.today().year + 1}-01-01") is None

    def test_no_year(self):
        assert parse_year("unknown date") is None


class TestExtractYear:
    def test_field_priority(self):
        """DateTimeOriginal is preferred over DateTime."""
        ext = _ext(DateTimeOriginal="2001-01-01", DateTime="2005-01-01")
        assert extract_year(ext) == 2001

    def test_falls_through_unparseable_fields(self):
        ext = _ext(DateTimeOriginal="unknown", DateTimeDigitized="2011:02:03 00:00:00")
        assert extract_year(ext) == 2011

    def test_missing(self):
        assert extract_year({}) is None


class TestCoordinates:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (48.5, 48.5),
            ("-33.86", -33.86),
            ("40° 26′ 46″ N", 40.446111),
            ("79°58'56\" W", -79.982222),
            ("garbage", None),
            (None, None),
            (True, None),
        ],
    )
    def test_parse_coordinate(self, value, expected):
        """Decimal numbers, decimal strings and DMS with hemisphere letters."""
        result = parse_coordinate(value)
        if expected is None:
            assert result is None
        else:
            assert result == pytest.approx(expected, abs=1e-5)

    def test_from_extmetadata(self):
        coords = extract_coordinates(_ext(GPSLatitude="51.5", GPSLongitude="-0.12"))
        assert coords == Coordinates(51.5, -0.12)

    def test_falls_back_to_exif_array(self):
        """Raw EXIF name/value pairs are used when extmetadata has no GPS."""
        exif = [{"name": "GPSLatitude", "value": 10.5}, {"name": "GPSLongitude", "value": 20.25}]
        assert extract_coordinates({}, exif) == Coordinates(10.5, 20.25)

    def test_null_island_discarded(self):
        """(0, 0) is an unset GPS tag, not a real location."""
        assert extract_coordinates(_ext(GPSLatitude="0", GPSLongitude="0")) is None

    def test_out_of_range_discarded(self):
        assert extract_coordinates(_ext(GPSLatitude="95", GPSLongitude="10")) is None


class TestText:
    def test_strip_html(self):
        assert strip_html('<a href="/u">Jane &amp; Co</a>') == "Jane & Co"
        assert strip_html("") is None
        assert strip_html("<br/>") is None

    def test_clean_title(self):
        assert clean_title("File:Eiffel Tower.JPG") == "Eiffel Tower"
        assert clean_title("File:Map.svg") == "Map"


class TestBuildMetadataBag:
    def test_full_page(self):
        page = {
            "pageid": 7,
            "title": "File:Bridge.jpg",
            "imageinfo": [{
                "url": "https://upload.wikimedia.org/Bridge.jpg",
                "mime": "image/jpeg",
                "extmetadata": _ext(
                    DateTimeOriginal="2012-05-05",
                    GPSLatitude="37.8199",
                    GPSLongitude="-122.4783",
                    Artist="<b>Someone</b>",
                    LicenseShortName="CC BY 2.0",
                ),
            }],
        }
        bag = build_metadata_bag(page)
        assert bag["url"] == "https://upload.wikimedia.org/Bridge.jpg"
        assert bag["mime_type"] == "image/jpeg"
        assert bag["year"] == 2012
        assert bag["coordinates"] == Coordinates(37.8199, -122.4783)
        assert bag["artist"] == "Someone"
        assert bag["license"] == "CC BY 2.0"
        assert bag["title"] == "Bridge"

    def test_license_fallbacks(self):
        """LicenseShortName, then UsageTerms, then a fixed placeholder."""
        def page(ext):
            return {"title": "File:X.jpg", "imageinfo": [{"url": "u", "extmetadata": ext}]}

        assert build_metadata_bag(page(_ext(UsageTerms="Public domain")))["license"] == "Public domain"
        assert build_metadata_bag(page({}))["license"] == "Unknown License"

    def test_missing_mime_is_none(self):
        """A page without a MIME type yields None, not an empty string."""
        bag = build_metadata_bag({"title": "File:X", "imageinfo": [{"url": "u"}]})
        assert bag["mime_type"] is None

    @pytest.mark.parametrize("page", [{"title": "File:X"}, {"title": "File:X", "imageinfo": [{}]}])
    def test_no_url(self, page):
        assert build_metadata_bag(page) is None
