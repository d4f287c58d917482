"""Turn any raised failure into a uniform :class:`ErrorRecord`.

Classification order for generic exceptions:
    1. The optional operation ``context`` is scanned for a domain keyword
       ("map", "photo", "scoring", "game", first match wins).
    2. The exception's own message is scanned for "network"/"fetch",
       "validation"/"invalid" and "map"/"leaflet". A match here replaces
       whatever the context scan decided.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

import httpx

from geophoto.errors import ProtocolError
from geophoto.types import ErrorCategory, ErrorRecord

logger = logging.getLogger(__name__)


DEFAULT_MESSAGES: Mapping[ErrorCategory, str] = MappingProxyType({
    ErrorCategory.network: (
        "Network connection failed. Please check your internet connection and try again."
    ),
    ErrorCategory.api: "Service temporarily unavailable. Please try again later.",
    ErrorCategory.validation: "Please check your input and try again.",
    ErrorCategory.map: "Map loading failed. Please refresh the page and try again.",
    ErrorCategory.photo: "Photo loading failed. Please try again.",
    ErrorCategory.scoring: "Score calculation failed. Please try again.",
    ErrorCategory.game: "Game error occurred. Please restart the game.",
    ErrorCategory.unknown: "An unexpected error occurred. Please try again.",
})

# (keyword, category, user message) in priority order
_CONTEXT_RULES: tuple[tuple[str, ErrorCategory, str], ...] = (
    ("map", ErrorCategory.map, "Map loading failed. Please refresh the page and try again."),
    ("photo", ErrorCategory.photo, "Photo loading failed. Please try again."),
    ("scoring", ErrorCategory.scoring, "Score calculation failed. Please try again."),
    ("game", ErrorCategory.game, "Game error occurred. Please restart the game."),
)

_STATUS_MESSAGES: Mapping[int, tuple[ErrorCategory, str, bool]] = MappingProxyType({
    0: (
        ErrorCategory.network,
        "Network connection failed. Please check your internet connection and try again.",
        True,
    ),
    400: (ErrorCategory.validation, "Invalid request. Please check your input and try again.", False),
    401: (ErrorCategory.api, "Authentication required. Please refresh the page and try again.", False),
    403: (
        ErrorCategory.api,
        "Access denied. You do not have permission to perform this action.",
        False,
    ),
    404: (ErrorCategory.api, "The requested resource was not found. Please try again later.", True),
    429: (ErrorCategory.api, "Too many requests. Please wait a moment and try again.", True),
})

_SERVER_ERROR_MESSAGE = "Server error occurred. Please try again later."


class ErrorClassifier:
    """Classify failures, look up user messages, and decide retryability.

    Args:
        messages: Category-to-sentence table used by :meth:`get_message`.
            Defaults to :data:`DEFAULT_MESSAGES`; the mapping is copied into
            a read-only view so later changes by the caller have no effect.
    """

    def __init__(self, messages: Mapping[ErrorCategory, str] | None = None) -> None:
        table = dict(DEFAULT_MESSAGES)
        if messages:
            table.update(messages)
        self._messages: Mapping[ErrorCategory, str] = MappingProxyType(table)

    # ------------------------------------------------------------------

    def classify(self, error: Any, context: str | None = None) -> ErrorRecord:
        """Build an :class:`ErrorRecord` for any failure value.

        Args:
            error: An exception, a plain string, or any other value.
            context: Free text naming the operation that failed ("photo
                search", "map render", ...).
        """
        status = _protocol_status(error)
        if status is not None:
            return self._classify_status(error, status)
        if isinstance(error, BaseException):
            return self._classify_exception(error, context)
        if isinstance(error, str):
            return self._classify_string(error, context)
        return ErrorRecord(
            category=ErrorCategory.unknown,
            message="An unknown error occurred",
            user_message=self._messages[ErrorCategory.unknown],
            details=error,
            retryable=True,
        )

    def get_message(self, category: Any, fallback: str | None = None) -> str:
        """Return the canonical sentence for a category.

        ``fallback`` is only used for values that are not an
        :class:`ErrorCategory`; every real category has a sentence.
        """
        try:
            key = ErrorCategory(category)
        except (ValueError, TypeError):
            return fallback if fallback is not None else self._messages[ErrorCategory.unknown]
        return self._messages[key]

    @staticmethod
    def is_retryable(record: ErrorRecord) -> bool:
        """Validation failures are never retried, whatever the stored flag says."""
        return record.retryable and record.category is not ErrorCategory.validation

    def log_error(self, record: ErrorRecord, context: str | None = None) -> None:
        """Log a record: transport/API trouble as warnings, the rest as errors."""
        level = (
            logging.WARNING
            if record.category in (ErrorCategory.network, ErrorCategory.api)
            else logging.ERROR
        )
        logger.log(
            level,
            "Application error [%s]%s: %s (code=%s, retryable=%s)",
            record.category.value,
            f" during {context}" if context else "",
            record.message,
            record.code,
            record.retryable,
        )

    # ------------------------------------------------------------------

    def _classify_status(self, error: BaseException, status: int) -> ErrorRecord:
        if status in _STATUS_MESSAGES:
            category, user_message, retryable = _STATUS_MESSAGES[status]
        elif 500 <= status <= 599:
            category, user_message, retryable = ErrorCategory.api, _SERVER_ERROR_MESSAGE, True
        else:
            category = ErrorCategory.api
            user_message = f"An error occurred ({status}). Please try again."
            retryable = True

        return ErrorRecord(
            category=category,
            message=str(error) or f"HTTP {status} error",
            user_message=user_message,
            code=status,
            details=_protocol_details(error),
            retryable=retryable,
        )

    def _classify_exception(self, error: BaseException, context: str | None) -> ErrorRecord:
        category = ErrorCategory.unknown
        user_message = self._messages[ErrorCategory.unknown]
        retryable = True

        if context:
            context_lower = context.lower()
            for keyword, rule_category, rule_message in _CONTEXT_RULES:
                if keyword in context_lower:
                    category, user_message = rule_category, rule_message
                    break

        message = str(error).lower()
        if "network" in message or "fetch" in message:
            category = ErrorCategory.network
            user_message = "Network error occurred. Please check your connection and try again."
        elif "validation" in message or "invalid" in message:
            category = ErrorCategory.validation
            user_message = "Invalid input provided. Please check your entries and try again."
            retryable = False
        elif "map" in message or "leaflet" in message:
            category = ErrorCategory.map
            user_message = "Map error occurred. Please refresh the page and try again."

        return ErrorRecord(
            category=category,
            message=str(error),
            user_message=user_message,
            details={
                "name": type(error).__name__,
                "context": context,
                "traceback": _format_traceback(error),
            },
            retryable=retryable,
        )

    def _classify_string(self, error: str, context: str | None) -> ErrorRecord:
        category = ErrorCategory.unknown
        user_message = error
        retryable = True

        lowered = error.lower()
        if "network" in lowered or "connection" in lowered:
            category = ErrorCategory.network
            user_message = self._messages[ErrorCategory.network]
        elif "validation" in lowered or "invalid" in lowered:
            category = ErrorCategory.validation
            retryable = False
        elif "map" in lowered:
            category = ErrorCategory.map
            user_message = "Map error occurred. Please refresh the page and try again."
        elif "photo" in lowered:
            category = ErrorCategory.photo
            user_message = self._messages[ErrorCategory.photo]
        elif "score" in lowered or "scoring" in lowered:
            category = ErrorCategory.scoring
            user_message = self._messages[ErrorCategory.scoring]

        return ErrorRecord(
            category=category,
            message=error,
            user_message=user_message,
            details={"context": context},
            retryable=retryable,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _protocol_status(error: Any) -> int | None:
    """Status code for protocol-level failures, None for everything else."""
    if isinstance(error, ProtocolError):
        return error.status
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    if isinstance(error, httpx.TransportError):
        return 0
    return None


def _protocol_details(error: BaseException) -> dict[str, Any]:
    if isinstance(error, ProtocolError):
        return {"url": error.url, "status_text": error.status_text, "body": error.body}
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        return {
            "url": str(error.request.url),
            "status_text": response.reason_phrase,
            "body": response.text,
        }
    url = None
    if isinstance(error, httpx.RequestError):
        try:
            url = str(error.request.url)
        except RuntimeError:
            # httpx raises when the error was created without a request
            url = None
    return {"url": url, "status_text": None, "body": None}


def _format_traceback(error: BaseException) -> str | None:
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))
