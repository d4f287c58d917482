"""Core data types for GeoPhoto.

Every module in the library produces/consumes these types:
- Error records produced by the classifier and consumed by retry decisions
- Format verdicts produced by the detector and collected per candidate
- Candidate and accepted photos flowing through the acquisition pipeline
- Metrics events emitted during validation
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ErrorCategory(str, enum.Enum):
    """Uniform failure categories produced by the error classifier."""

    network = "network"
    api = "api"
    validation = "validation"
    map = "map"
    photo = "photo"
    scoring = "scoring"
    game = "game"
    unknown = "unknown"


class DetectionMethod(str, enum.Enum):
    """How a format verdict was reached.

    Each method has a ``-cached`` twin reported when the verdict was served
    from the collector cache instead of a fresh detection.
    """

    input_validation = "input-validation"
    mime_type = "mime-type"
    url_extension = "url-extension"
    http_content_type = "http-content-type"
    content_sniff = "content-sniff"
    unknown = "unknown"

    input_validation_cached = "input-validation-cached"
    mime_type_cached = "mime-type-cached"
    url_extension_cached = "url-extension-cached"
    http_content_type_cached = "http-content-type-cached"
    content_sniff_cached = "content-sniff-cached"
    unknown_cached = "unknown-cached"

    @property
    def is_cached(self) -> bool:
        return self.value.endswith("-cached")

    @property
    def cached(self) -> DetectionMethod:
        """The cached variant of this method (idempotent)."""
        if self.is_cached:
            return self
        return DetectionMethod(f"{self.value}-cached")

    @property
    def is_network_probe(self) -> bool:
        """True if a fresh detection with this method hits the network."""
        return self in (DetectionMethod.http_content_type, DetectionMethod.content_sniff)


class OutcomeStatus(str, enum.Enum):
    """Non-error results of an acquisition run."""

    success = "success"
    partial = "partial"


# ---------------------------------------------------------------------------
# Error records
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ErrorRecord:
    """A classified failure occurrence.

    Validation failures are never retryable: the flag passed in is overridden
    on construction.
    """

    category: ErrorCategory
    message: str
    user_message: str
    retryable: bool = True
    code: int | str | None = None
    details: Any = None
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.category is ErrorCategory.validation and self.retryable:
            object.__setattr__(self, "retryable", False)


# ---------------------------------------------------------------------------
# Format verdicts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FormatVerdict:
    """Accept/reject decision plus detected format metadata for one address."""

    is_valid: bool
    confidence: float
    detection_method: DetectionMethod
    detected_format: str | None = None
    detected_mime_type: str | None = None
    rejection_reason: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


# ---------------------------------------------------------------------------
# Geography and photos
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Coordinates:
    """A WGS84 point in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")

    def to_param(self) -> str:
        """Serialize as the ``lat|lon`` pair geosearch expects."""
        return f"{self.latitude}|{self.longitude}"


@dataclass(frozen=True)
class SearchLocation:
    """Where to search and how far around it, in meters."""

    name: str
    coordinates: Coordinates
    radius_m: int


@dataclass(frozen=True)
class SearchHit:
    """An image reference returned by a geosearch, not yet described."""

    page_id: int
    title: str
    coordinates: Coordinates | None = None
    distance_m: float | None = None


@dataclass(frozen=True)
class CandidatePhoto:
    """A described image reference awaiting format validation.

    ``metadata`` is the raw bag from the data source (``mime_type``, ``year``,
    ``artist``, ``license``, ``description``, ...).
    """

    id: str
    url: str
    coordinates: Coordinates | None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def declared_mime_type(self) -> str | None:
        """MIME type the source declared, ``None`` when it declared none."""
        value = self.metadata.get("mime_type")
        return value if isinstance(value, str) else None


@dataclass(frozen=True)
class AcceptedPhoto:
    """A candidate whose format verdict accepted it. Unit returned to callers."""

    candidate: CandidatePhoto
    format: str
    mime_type: str | None = None

    @classmethod
    def from_verdict(cls, candidate: CandidatePhoto, verdict: FormatVerdict) -> AcceptedPhoto:
        if not verdict.is_valid or verdict.detected_format is None:
            raise ValueError(f"Verdict for {candidate.url!r} did not accept a format")
        mime = verdict.detected_mime_type or candidate.declared_mime_type
        return cls(candidate=candidate, format=verdict.detected_format, mime_type=mime)

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def url(self) -> str:
        return self.candidate.url

    @property
    def coordinates(self) -> Coordinates | None:
        return self.candidate.coordinates

    @property
    def metadata(self) -> dict[str, Any]:
        return self.candidate.metadata

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable view."""
        coords = self.coordinates
        return {
            "id": self.id,
            "url": self.url,
            "format": self.format,
            "mime_type": self.mime_type,
            "latitude": coords.latitude if coords else None,
            "longitude": coords.longitude if coords else None,
            "year": self.metadata.get("year"),
            "artist": self.metadata.get("artist"),
            "license": self.metadata.get("license"),
        }


# ---------------------------------------------------------------------------
# Pipeline state and outcome
# ---------------------------------------------------------------------------


@dataclass
class AttemptState:
    """Mutable bookkeeping owned by one pipeline invocation."""

    requested_count: int
    max_attempts: int
    attempts_used: int = 0
    fetch_failures: int = 0
    accepted: list[AcceptedPhoto] = field(default_factory=list)
    seen_ids: set[str] = field(default_factory=set)

    def add(self, photo: AcceptedPhoto) -> bool:
        """Append in discovery order. Returns False for a photo already accepted."""
        if photo.id in self.seen_ids:
            return False
        self.seen_ids.add(photo.id)
        self.accepted.append(photo)
        return True

    @property
    def satisfied(self) -> bool:
        return len(self.accepted) >= self.requested_count

    @property
    def can_retry(self) -> bool:
        return self.attempts_used < self.max_attempts

    @property
    def every_attempt_failed_fetching(self) -> bool:
        return self.attempts_used > 0 and self.fetch_failures == self.attempts_used


@dataclass(frozen=True)
class AcquisitionOutcome:
    """A full or partial batch. Terminal failures are raised, not returned."""

    status: OutcomeStatus
    photos: tuple[AcceptedPhoto, ...]
    requested_count: int
    attempts_used: int

    @property
    def is_partial(self) -> bool:
        return self.status is OutcomeStatus.partial

    @property
    def shortfall(self) -> int:
        return max(0, self.requested_count - len(self.photos))


# ---------------------------------------------------------------------------
# Metrics events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationEvent:
    """One verdict resolution, as reported to the metrics sink."""

    address: str
    success: bool
    detection_method: DetectionMethod
    was_cached: bool = False
    was_network_probe: bool = False
    batch_size: int | None = None
    duration_ms: float = 0.0


@dataclass(frozen=True)
class BatchEvent:
    """One validation pass over an attempt's candidates."""

    batch_size: int
    total_duration_ms: float
    success_count: int
