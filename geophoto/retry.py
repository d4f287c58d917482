"""Generic retry primitive with exponential backoff.

Each invocation of a protected action produces a tagged result:

- :class:`Succeeded` carries the action's return value.
- :class:`RetryableFailure` carries the classified error of a transient failure.
- :class:`TerminalFailure` carries an error that will not be retried, either
  because its category is not retryable or because attempts ran out.

Backoff waits go through a :class:`Timer`, never a blocking sleep, so the
event loop stays free while a retry is pending.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, Union, runtime_checkable

from geophoto.classify import ErrorClassifier
from geophoto.config import RetryConfig
from geophoto.types import ErrorRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

Action = Callable[[], Union[T, Awaitable[T]]]


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float | None = None) -> float:
    """Delay before retrying after ``attempt`` failed: ``base * 2**(attempt-1)``."""
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    delay = base * (2 ** (attempt - 1))
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


# ---------------------------------------------------------------------------
# Timer primitive
# ---------------------------------------------------------------------------


@runtime_checkable
class Timer(Protocol):
    """Schedules the resumption of a waiting coroutine."""

    async def wait(self, seconds: float) -> None: ...


class LoopTimer:
    """Resume after ``seconds`` via an event-loop timer callback."""

    async def wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()
        handle = loop.call_later(seconds, _resolve, future)
        try:
            await future
        finally:
            handle.cancel()


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


# ---------------------------------------------------------------------------
# Tagged attempt results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Succeeded(Generic[T]):
    value: T
    attempt: int


@dataclass(frozen=True)
class RetryableFailure:
    error: BaseException
    record: ErrorRecord
    attempt: int


@dataclass(frozen=True)
class TerminalFailure:
    error: BaseException
    record: ErrorRecord
    attempt: int

    def reraise(self) -> None:
        raise self.error


AttemptResult = Union[Succeeded[Any], RetryableFailure, TerminalFailure]


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class RetryScheduler:
    """Re-invoke a failing action with exponential backoff.

    Args:
        classifier: Decides whether a failure is worth another attempt.
        timer: Realizes backoff waits. Defaults to :class:`LoopTimer`.
        base_delay: Seconds waited after the first failure; doubles each time.
        max_delay: Optional ceiling on any single wait.
        context: Operation name passed to the classifier ("photo search", ...).
        max_attempts: Default attempt ceiling for :meth:`wrap` and :meth:`run`.
    """

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        timer: Timer | None = None,
        base_delay: float = 1.0,
        max_delay: float | None = None,
        context: str | None = None,
        max_attempts: int = 3,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.classifier = classifier or ErrorClassifier()
        self.timer = timer or LoopTimer()
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.context = context
        self.max_attempts = max_attempts

    @classmethod
    def from_config(
        cls,
        config: RetryConfig,
        classifier: ErrorClassifier | None = None,
        timer: Timer | None = None,
        context: str | None = None,
    ) -> RetryScheduler:
        """Build a scheduler from the ``retry`` section of :class:`GeoPhotoConfig`."""
        return cls(
            classifier=classifier,
            timer=timer,
            base_delay=config.base_delay_seconds,
            max_delay=config.max_delay_seconds,
            context=context,
            max_attempts=config.max_attempts,
        )

    def wrap(self, action: Action[T], max_attempts: int | None = None) -> Callable[[], Awaitable[T]]:
        """Return a zero-argument trigger running ``action`` under retry.

        The trigger returns the action's value or re-raises the original
        exception once retrying is pointless. Every call of the trigger starts
        its own attempt counter.
        """
        if max_attempts is None:
            max_attempts = self.max_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        async def trigger() -> T:
            result = await self.run(action, max_attempts)
            if isinstance(result, TerminalFailure):
                result.reraise()
            return result.value

        return trigger

    async def run(
        self, action: Action[T], max_attempts: int | None = None
    ) -> Succeeded[T] | TerminalFailure:
        """Run ``action`` until it succeeds or fails terminally. Never raises
        for failures of the action itself."""
        if max_attempts is None:
            max_attempts = self.max_attempts
        attempt = 1
        while True:
            result = await self.attempt(action, attempt, max_attempts)
            if isinstance(result, RetryableFailure):
                delay = backoff_delay(attempt, self.base_delay, self.max_delay)
                logger.warning(
                    "Retryable %s error (attempt %d/%d): %s, retrying in %.1fs",
                    result.record.category.value, attempt, max_attempts,
                    result.record.message, delay,
                )
                await self.timer.wait(delay)
                attempt += 1
                continue
            if isinstance(result, TerminalFailure):
                self.classifier.log_error(result.record, self.context)
            return result

    async def attempt(self, action: Action[T], attempt: int, max_attempts: int) -> AttemptResult:
        """Invoke ``action`` once and tag the result."""
        try:
            value = action()
            if inspect.isawaitable(value):
                value = await value
        except Exception as exc:
            record = self.classifier.classify(exc, self.context)
            if self.classifier.is_retryable(record) and attempt < max_attempts:
                return RetryableFailure(error=exc, record=record, attempt=attempt)
            return TerminalFailure(error=exc, record=record, attempt=attempt)
        return Succeeded(value=value, attempt=attempt)
