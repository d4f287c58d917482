"""Shared test fixtures for GeoPhoto."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from typing import Any

import pytest

from geophoto.acquire.pipeline import AcquisitionPipeline
from geophoto.config import AcquisitionConfig
from geophoto.types import (
    BatchEvent,
    Coordinates,
    DetectionMethod,
    FormatVerdict,
    SearchHit,
    SearchLocation,
    ValidationEvent,
)
from geophoto.validate.verdicts import VerdictCollector


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class ScriptedSource:
    """PhotoSource returning the same titles on every search.

    ``search_errors`` and ``metadata_errors`` are consumed one per call;
    ``None`` entries (or an exhausted list) mean the call succeeds.
    """

    def __init__(
        self,
        titles: list[str] | None = None,
        *,
        search_errors: list[BaseException | None] | None = None,
        metadata_errors: list[BaseException | None] | None = None,
        mime_types: dict[str, str | None] | None = None,
        without_url: set[str] | None = None,
    ) -> None:
        self.titles = titles if titles is not None else ["File:A.jpg", "File:B.jpg", "File:C.jpg"]
        self.search_errors = list(search_errors or [])
        self.metadata_errors = list(metadata_errors or [])
        self.mime_types = mime_types or {}
        self.without_url = without_url or set()
        self.search_calls: list[SearchLocation] = []
        self.metadata_calls: list[list[SearchHit]] = []

    async def search(self, location: SearchLocation) -> list[SearchHit]:
        self.search_calls.append(location)
        if self.search_errors:
            error = self.search_errors.pop(0)
            if error is not None:
                raise error
        return [
            SearchHit(page_id=i + 1, title=title, coordinates=Coordinates(48.0 + i, 2.0))
            for i, title in enumerate(self.titles)
        ]

    async def get_metadata(self, hits: list[SearchHit]) -> dict[str, dict[str, Any]]:
        self.metadata_calls.append(list(hits))
        if self.metadata_errors:
            error = self.metadata_errors.pop(0)
            if error is not None:
                raise error
        result = {}
        for hit in hits:
            bag: dict[str, Any] = {
                "url": None if hit.title in self.without_url else photo_url(hit.title),
                "title": hit.title,
                "year": 2001,
                "license": "CC BY-SA 4.0",
            }
            if hit.title in self.mime_types:
                bag["mime_type"] = self.mime_types[hit.title]
            else:
                bag["mime_type"] = "image/jpeg"
            result[hit.title] = bag
        return result


def photo_url(title: str) -> str:
    return f"https://upload.example.org/{title.removeprefix('File:')}"


class ScriptedDetector:
    """FormatDetector whose decision is a function of (address, nth call for it).

    ``decide`` returns True to accept, False to reject, a ready
    :class:`FormatVerdict`, or an exception instance to raise.
    """

    def __init__(self, decide: Callable[[str, int], Any] | None = None) -> None:
        self.decide = decide or (lambda address, nth: True)
        self.calls: list[tuple[str, str | None]] = []
        self._per_address: Counter[str] = Counter()

    async def detect(
        self,
        address: str,
        declared_mime_type: str | None = None,
        raw_metadata: dict[str, Any] | None = None,
    ) -> FormatVerdict:
        self.calls.append((address, declared_mime_type))
        self._per_address[address] += 1
        result = self.decide(address, self._per_address[address])
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, FormatVerdict):
            return result
        if result:
            return FormatVerdict(
                is_valid=True, confidence=0.9, detection_method=DetectionMethod.mime_type,
                detected_format="jpeg", detected_mime_type="image/jpeg",
            )
        return FormatVerdict(
            is_valid=False, confidence=0.9, detection_method=DetectionMethod.mime_type,
            detected_format="tiff", detected_mime_type="image/tiff",
            rejection_reason="Limited browser support",
        )


class RecordingTimer:
    """Timer that returns immediately and remembers every requested wait."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def wait(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingMetrics:
    def __init__(self) -> None:
        self.validations: list[ValidationEvent] = []
        self.batches: list[BatchEvent] = []

    def record_validation(self, event: ValidationEvent) -> None:
        self.validations.append(event)

    def record_batch(self, event: BatchEvent) -> None:
        self.batches.append(event)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def timer() -> RecordingTimer:
    return RecordingTimer()


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def acquisition_config() -> AcquisitionConfig:
    """One location per attempt keeps search calls equal to attempts."""
    return AcquisitionConfig(max_attempts=4, locations_per_attempt=1, seed=7)


@pytest.fixture
def make_pipeline(timer, metrics, acquisition_config):
    """Build a pipeline around a source and detector with recording fakes."""

    def _make(
        source: ScriptedSource | None = None,
        detector: ScriptedDetector | None = None,
        config: AcquisitionConfig | None = None,
    ) -> AcquisitionPipeline:
        collector = VerdictCollector(detector or ScriptedDetector(), metrics=metrics)
        return AcquisitionPipeline(
            source or ScriptedSource(),
            collector,
            config=config or acquisition_config,
            metrics=metrics,
            timer=timer,
        )

    return _make
