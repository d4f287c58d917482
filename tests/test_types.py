"""Tests for geophoto.types."""

from __future__ import annotations

import pytest

from geophoto.types import (
    AcceptedPhoto,
    AcquisitionOutcome,
    AttemptState,
    CandidatePhoto,
    Coordinates,
    DetectionMethod,
    ErrorCategory,
    ErrorRecord,
    FormatVerdict,
    OutcomeStatus,
)


def _candidate(id_: str = "File:A.jpg", **metadata) -> CandidatePhoto:
    return CandidatePhoto(
        id=id_, url=f"https://x.test/{id_}", coordinates=Coordinates(1.0, 2.0), metadata=metadata,
    )


def _accepting(fmt: str = "jpeg") -> FormatVerdict:
    return FormatVerdict(
        is_valid=True, confidence=0.9, detection_method=DetectionMethod.mime_type,
        detected_format=fmt, detected_mime_type=f"image/{fmt}",
    )


class TestErrorRecord:
    def test_validation_forced_non_retryable(self):
        """VALIDATION records ignore a retryable=True argument."""
        record = ErrorRecord(ErrorCategory.validation, "m", "u", retryable=True)
        assert record.retryable is False

    def test_other_categories_keep_flag(self):
        assert ErrorRecord(ErrorCategory.api, "m", "u").retryable is True
        assert ErrorRecord(ErrorCategory.api, "m", "u", retryable=False).retryable is False

    def test_timestamp_is_aware(self):
        assert ErrorRecord(ErrorCategory.api, "m", "u").timestamp.tzinfo is not None


class TestDetectionMethod:
    def test_cached_variant(self):
        assert DetectionMethod.mime_type.cached is DetectionMethod.mime_type_cached
        assert DetectionMethod.mime_type_cached.value == "mime-type-cached"

    def test_cached_is_idempotent(self):
        """A cached method maps to itself."""
        assert DetectionMethod.url_extension_cached.cached is DetectionMethod.url_extension_cached

    def test_every_method_has_a_cached_twin(self):
        for method in DetectionMethod:
            assert method.cached.is_cached

    def test_network_probes(self):
        assert DetectionMethod.http_content_type.is_network_probe
        assert DetectionMethod.content_sniff.is_network_probe
        assert not DetectionMethod.mime_type.is_network_probe
        assert not DetectionMethod.http_content_type_cached.is_network_probe


class TestFormatVerdict:
    @pytest.mark.parametrize("confidence", [-0.1, 1.01])
    def test_confidence_bounds(self, confidence):
        with pytest.raises(ValueError):
            FormatVerdict(is_valid=False, confidence=confidence, detection_method=DetectionMethod.unknown)


class TestCoordinates:
    def test_to_param(self):
        assert Coordinates(48.8566, 2.3522).to_param() == "48.8566|2.3522"

    @pytest.mark.parametrize("lat, lon", [(91.0, 0.0), (0.0, -181.0)])
    def test_out_of_range(self, lat, lon):
        with pytest.raises(ValueError):
            Coordinates(lat, lon)


class TestPhotos:
    def test_declared_mime_type(self):
        """Only string MIME values count as declared; empty strings are kept."""
        assert _candidate(mime_type="image/png").declared_mime_type == "image/png"
        assert _candidate(mime_type="").declared_mime_type == ""
        assert _candidate().declared_mime_type is None
        assert _candidate(mime_type=5).declared_mime_type is None

    def test_from_verdict(self):
        photo = AcceptedPhoto.from_verdict(_candidate(year=1999), _accepting("png"))
        assert photo.format == "png"
        assert photo.mime_type == "image/png"
        assert photo.id == "File:A.jpg"
        assert photo.metadata["year"] == 1999

    def test_from_rejecting_verdict_fails(self):
        """Building an accepted photo from a rejection is a programming error."""
        verdict = FormatVerdict(is_valid=False, confidence=0.9, detection_method=DetectionMethod.mime_type)
        with pytest.raises(ValueError):
            AcceptedPhoto.from_verdict(_candidate(), verdict)

    def test_to_dict(self):
        photo = AcceptedPhoto.from_verdict(_candidate(year=2010, license="CC0"), _accepting())
        data = photo.to_dict()
        assert data["latitude"] == 1.0
        assert data["longitude"] == 2.0
        assert data["year"] == 2010
        assert data["license"] == "CC0"
        assert data["format"] == "jpeg"


class TestAttemptState:
    def test_add_deduplicates(self):
        state = AttemptState(requested_count=2, max_attempts=3)
        photo = AcceptedPhoto.from_verdict(_candidate(), _accepting())
        assert state.add(photo) is True
        assert state.add(photo) is False
        assert len(state.accepted) == 1
        assert not state.satisfied

    def test_retry_budget(self):
        state = AttemptState(requested_count=1, max_attempts=2)
        assert state.can_retry
        state.attempts_used = 2
        assert not state.can_retry

    def test_every_attempt_failed_fetching(self):
        """Needs at least one attempt, and every attempt must have failed fetching."""
        state = AttemptState(requested_count=1, max_attempts=2)
        assert not state.every_attempt_failed_fetching
        state.attempts_used = state.fetch_failures = 2
        assert state.every_attempt_failed_fetching


class TestAcquisitionOutcome:
    def test_partial(self):
        """Shortfall is the difference between requested and returned photos."""
        photo = AcceptedPhoto.from_verdict(_candidate(), _accepting())
        outcome = AcquisitionOutcome(
            status=OutcomeStatus.partial, photos=(photo,), requested_count=3, attempts_used=4,
        )
        assert outcome.is_partial
        assert outcome.shortfall == 2
