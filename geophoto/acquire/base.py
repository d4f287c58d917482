"""Protocols for photo sources and acquirers."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from geophoto.types import AcquisitionOutcome, SearchHit, SearchLocation


@runtime_checkable
class PhotoSource(Protocol):
    """A geotagged-image API.

    Implementations: WikimediaSource.
    """

    async def search(self, location: SearchLocation) -> list[SearchHit]:
        """Find image references near a location.

        Args:
            location: Center point and radius to search.

        Returns:
            Hits in the order the API ranked them.
        """
        ...

    async def get_metadata(self, hits: list[SearchHit]) -> dict[str, dict[str, Any]]:
        """Describe a batch of hits.

        Args:
            hits: Hits returned by :meth:`search`.

        Returns:
            Raw metadata keyed by hit title. Hits the API could not describe
            are absent. Each bag holds at least ``url`` and may hold
            ``mime_type``, ``year``, ``coordinates``, ``artist``, ``license``.
        """
        ...


@runtime_checkable
class PhotoAcquirer(Protocol):
    """Protocol for acquiring a batch of validated photos.

    Implementations: AcquisitionPipeline.
    """

    async def fetch(self, requested_count: int) -> AcquisitionOutcome:
        """Acquire up to ``requested_count`` photos.

        Returns:
            A full or partial batch. Terminal failures are raised.
        """
        ...
