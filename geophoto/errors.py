"""Error types for photo acquisition."""

from __future__ import annotations

from typing import Any

from geophoto.types import ErrorRecord

INSUFFICIENT_PHOTOS_MESSAGE = (
    "Unable to find photos in supported formats after multiple retry attempts. "
    "This may be due to strict format restrictions or limited photo availability "
    "in the searched areas."
)


class GeoPhotoError(Exception):
    """Base exception for GeoPhoto."""


class ProtocolError(GeoPhotoError):
    """Raised when a remote API answers with a failure status.

    ``status`` 0 means the request never got an answer (network unreachable,
    timeout, DNS failure).
    """

    def __init__(
        self,
        status: int,
        message: str = "",
        *,
        url: str | None = None,
        status_text: str | None = None,
        body: Any = None,
    ) -> None:
        self.status = status
        self.url = url
        self.status_text = status_text
        self.body = body
        super().__init__(message or f"HTTP {status} error")


class AcquisitionError(GeoPhotoError):
    """Base class for terminal acquisition failures that reach the caller."""

    def __init__(
        self, message: str, *, user_message: str, cause_record: ErrorRecord | None = None
    ) -> None:
        self.user_message = user_message
        self.cause_record = cause_record
        super().__init__(message)


class InsufficientPhotosError(AcquisitionError):
    """No candidate passed format validation after every attempt.

    ``requested_count`` and ``attempts_used`` are kept as attributes; the
    message itself is fixed so callers can match on it.
    """

    def __init__(
        self, requested_count: int, attempts_used: int, cause_record: ErrorRecord | None = None
    ) -> None:
        self.requested_count = requested_count
        self.attempts_used = attempts_used
        super().__init__(
            INSUFFICIENT_PHOTOS_MESSAGE,
            user_message=INSUFFICIENT_PHOTOS_MESSAGE,
            cause_record=cause_record,
        )


class FetchExhaustedError(AcquisitionError):
    """Search or metadata retrieval never succeeded."""

    def __init__(self, attempts: int, cause_record: ErrorRecord | None = None) -> None:
        self.attempts = attempts
        super().__init__(
            f"Photo search failed on all {attempts} attempt(s)",
            user_message=(
                f"Unable to reach the photo service after {attempts} attempts. "
                f"Please check your connection and try again."
            ),
            cause_record=cause_record,
        )
