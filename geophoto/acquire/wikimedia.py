"""Wikimedia Commons photo source.

Uses the MediaWiki Action API: ``list=geosearch`` to find files (namespace 6)
near a point, then ``prop=imageinfo`` to describe them in chunks of up to 50
titles per request.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from geophoto.acquire.metadata import build_metadata_bag
from geophoto.config import WikimediaConfig
from geophoto.errors import ProtocolError
from geophoto.retry import RetryScheduler
from geophoto.types import Coordinates, SearchHit, SearchLocation
from geophoto.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

FILE_NAMESPACE = 6

# API error codes that mean the request itself was wrong
_BAD_REQUEST_PREFIXES = ("badvalue", "invalid")


class WikimediaSource:
    """Satisfies :class:`~geophoto.acquire.base.PhotoSource` for Commons.

    Args:
        config: Endpoint, identification and filtering settings.
        client: Shared HTTP client. When omitted one is created with the
            configured timeout and ``User-Agent``, and closed by :meth:`aclose`.
        rate_limiter: Token bucket shared by every request of this source.
        retry: Re-issues a request after a transient failure. When omitted
            every request is tried once.
    """

    def __init__(
        self,
        config: WikimediaConfig | None = None,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        retry: RetryScheduler | None = None,
    ) -> None:
        self.config = config or WikimediaConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.timeout_seconds)
        self._rate_limiter = rate_limiter or RateLimiter(self.config.requests_per_minute)
        self._retry = retry

    async def __aenter__(self) -> WikimediaSource:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # PhotoSource
    # ------------------------------------------------------------------

    async def search(self, location: SearchLocation) -> list[SearchHit]:
        data = await self._query({
            "list": "geosearch",
            "gscoord": location.coordinates.to_param(),
            "gsradius": str(location.radius_m),
            "gslimit": str(self.config.results_per_location),
            "gsnamespace": str(FILE_NAMESPACE),
        })

        hits = []
        for item in data.get("query", {}).get("geosearch", []):
            title = item.get("title")
            if not title:
                continue
            coords = None
            if "lat" in item and "lon" in item:
                try:
                    coords = Coordinates(float(item["lat"]), float(item["lon"]))
                except (TypeError, ValueError):
                    coords = None
            hits.append(SearchHit(
                page_id=int(item.get("pageid", 0)),
                title=title,
                coordinates=coords,
                distance_m=item.get("dist"),
            ))
        logger.debug("Geosearch near %s (%dm): %d hits", location.name, location.radius_m, len(hits))
        return hits

    async def get_metadata(self, hits: list[SearchHit]) -> dict[str, dict[str, Any]]:
        titles = list(dict.fromkeys(hit.title for hit in hits))
        fallback_coords = {hit.title: hit.coordinates for hit in hits}
        size = self.config.titles_per_request

        result: dict[str, dict[str, Any]] = {}
        for start in range(0, len(titles), size):
            chunk = titles[start:start + size]
            data = await self._query({
                "titles": "|".join(chunk),
                "prop": "imageinfo",
                "iiprop": "url|mime|metadata|extmetadata",
            })
            for page in _pages(data):
                bag = build_metadata_bag(page, min_year=self.config.min_year)
                if bag is None:
                    continue
                title = page["title"]
                if bag["coordinates"] is None:
                    bag["coordinates"] = fallback_coords.get(title)
                if self.config.require_year and bag["year"] is None:
                    logger.debug("Skipping %s: no capture year", title)
                    continue
                if self.config.require_coordinates and bag["coordinates"] is None:
                    logger.debug("Skipping %s: no usable coordinates", title)
                    continue
                bag["page_id"] = page.get("pageid")
                result[title] = bag
        return result

    # ------------------------------------------------------------------

    async def _query(self, params: dict[str, str]) -> dict[str, Any]:
        if self._retry is None:
            return await self._request(params)
        return await self._retry.wrap(lambda: self._request(params))()

    async def _request(self, params: dict[str, str]) -> dict[str, Any]:
        """GET ``action=query`` and return the decoded body, or raise ProtocolError."""
        url = self.config.api_url
        if not await self._rate_limiter.acquire():
            raise ProtocolError(429, "Rate limiter timed out waiting for a token", url=url)

        query = {"action": "query", "format": "json", "origin": "*", **params}
        try:
            response = await self._client.get(
                url, params=query, headers={"User-Agent": self.config.user_agent},
            )
        except httpx.TransportError as exc:
            raise ProtocolError(0, f"Request to {url} failed: {exc}", url=url) from exc

        if response.is_error:
            raise ProtocolError(
                response.status_code,
                f"HTTP {response.status_code} from {url}",
                url=str(response.url),
                status_text=response.reason_phrase,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProtocolError(
                502, "Malformed JSON from Commons API", url=str(response.url), body=response.text,
            ) from exc

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            code = str(error.get("code", ""))
            status = 400 if code.startswith(_BAD_REQUEST_PREFIXES) else 502
            raise ProtocolError(
                status,
                f"Commons API error {code}: {error.get('info', '')}",
                url=str(response.url),
                status_text=code,
                body=error,
            )
        return data


def _pages(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Page entries from either ``formatversion`` layout, skipping missing pages."""
    pages = data.get("query", {}).get("pages", {})
    if isinstance(pages, dict):
        pages = list(pages.values())
    return [p for p in pages if "missing" not in p and p.get("title")]
