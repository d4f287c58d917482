"""Tests for geophoto.retry."""

from __future__ import annotations

import asyncio
import time

import pytest

from geophoto.config import RetryConfig
from geophoto.errors import ProtocolError
from geophoto.retry import (
    LoopTimer,
    RetryableFailure,
    RetryScheduler,
    Succeeded,
    TerminalFailure,
    backoff_delay,
)
from geophoto.types import ErrorCategory

from tests.conftest import RecordingTimer


class Flaky:
    """Callable failing with the given errors before returning ``value``."""

    def __init__(self, errors: list[BaseException], value: str = "ok") -> None:
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


class TestBackoffDelay:
    def test_doubles_from_base(self):
        assert [backoff_delay(a) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_custom_base(self):
        assert backoff_delay(3, base=0.5) == 2.0

    def test_capped(self):
        """The ceiling applies once the doubled delay would exceed it."""
        assert backoff_delay(10, base=1.0, max_delay=8.0) == 8.0

    def test_attempt_must_be_positive(self):
        with pytest.raises(ValueError):
            backoff_delay(0)


class TestRetryScheduler:
    @pytest.mark.asyncio
    async def test_success_first_try(self):
        timer = RecordingTimer()
        trigger = RetryScheduler(timer=timer).wrap(Flaky([]))
        assert await trigger() == "ok"
        assert timer.delays == []

    @pytest.mark.asyncio
    async def test_delays_follow_exponential_sequence(self):
        timer = RecordingTimer()
        action = Flaky([ProtocolError(503)] * 3)
        trigger = RetryScheduler(timer=timer).wrap(action, max_attempts=4)
        assert await trigger() == "ok"
        assert timer.delays == [1.0, 2.0, 4.0]
        assert action.calls == 4

    @pytest.mark.asyncio
    async def test_configured_attempts_used_by_default(self):
        """A scheduler built from RetryConfig applies its ceiling and backoff to wrap()."""
        timer = RecordingTimer()
        config = RetryConfig(max_attempts=4, base_delay_seconds=0.5, max_delay_seconds=1.0)
        scheduler = RetryScheduler.from_config(config, timer=timer, context="photo search")
        action = Flaky([ProtocolError(503)] * 4)

        with pytest.raises(ProtocolError):
            await scheduler.wrap(action)()

        assert action.calls == 4
        assert timer.delays == [0.5, 1.0, 1.0]
        assert scheduler.context == "photo search"

    def test_constructor_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryScheduler(max_attempts=0)

    @pytest.mark.asyncio
    async def test_reraises_original_error_when_exhausted(self):
        timer = RecordingTimer()
        error = ProtocolError(0, "offline")
        action = Flaky([error] * 5)
        trigger = RetryScheduler(timer=timer).wrap(action, max_attempts=3)
        with pytest.raises(ProtocolError) as exc_info:
            await trigger()
        assert exc_info.value is error
        assert action.calls == 3
        assert timer.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_validation_failure_not_retried(self):
        timer = RecordingTimer()
        action = Flaky([ProtocolError(400)])
        trigger = RetryScheduler(timer=timer).wrap(action, max_attempts=3)
        with pytest.raises(ProtocolError):
            await trigger()
        assert action.calls == 1
        assert timer.delays == []

    @pytest.mark.asyncio
    async def test_sync_action_supported(self):
        calls = []

        def action():
            calls.append(1)
            if len(calls) < 2:
                raise RuntimeError("fetch failed")
            return 42

        trigger = RetryScheduler(timer=RecordingTimer()).wrap(action)
        assert await trigger() == 42

    @pytest.mark.asyncio
    async def test_each_trigger_call_counts_from_one(self):
        timer = RecordingTimer()
        action = Flaky([ProtocolError(503)])
        trigger = RetryScheduler(timer=timer).wrap(action, max_attempts=2)
        assert await trigger() == "ok"
        assert timer.delays == [1.0]
        # the second call starts over, so one failure still fits in two attempts
        action.errors = [ProtocolError(503)]
        timer.delays.clear()
        assert await trigger() == "ok"
        assert timer.delays == [1.0]

    def test_rejects_zero_attempts(self):
        """wrap() validates an explicit ceiling before any call."""
        with pytest.raises(ValueError):
            RetryScheduler().wrap(Flaky([]), max_attempts=0)

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self):
        timer = RecordingTimer()
        action = Flaky([asyncio.CancelledError()])
        trigger = RetryScheduler(timer=timer).wrap(action)
        with pytest.raises(asyncio.CancelledError):
            await trigger()
        assert action.calls == 1


class TestTaggedResults:
    @pytest.mark.asyncio
    async def test_run_returns_succeeded(self):
        result = await RetryScheduler(timer=RecordingTimer()).run(Flaky([]))
        assert isinstance(result, Succeeded)
        assert result.value == "ok"
        assert result.attempt == 1

    @pytest.mark.asyncio
    async def test_run_returns_terminal_failure(self):
        result = await RetryScheduler(timer=RecordingTimer()).run(Flaky([ProtocolError(401)]))
        assert isinstance(result, TerminalFailure)
        assert result.record.category is ErrorCategory.api
        assert result.attempt == 1

    @pytest.mark.asyncio
    async def test_attempt_tags_retryable(self):
        scheduler = RetryScheduler()
        result = await scheduler.attempt(Flaky([ProtocolError(503)]), attempt=1, max_attempts=3)
        assert isinstance(result, RetryableFailure)

    @pytest.mark.asyncio
    async def test_last_attempt_is_terminal(self):
        scheduler = RetryScheduler()
        result = await scheduler.attempt(Flaky([ProtocolError(503)]), attempt=3, max_attempts=3)
        assert isinstance(result, TerminalFailure)

    @pytest.mark.asyncio
    async def test_context_used_for_classification(self):
        scheduler = RetryScheduler(timer=RecordingTimer(), context="photo search")
        result = await scheduler.run(Flaky([RuntimeError("boom")]), max_attempts=1)
        assert result.record.category is ErrorCategory.photo


class TestLoopTimer:
    @pytest.mark.asyncio
    async def test_waits_without_blocking_loop(self):
        ticks = []

        async def ticker():
            for _ in range(3):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        start = time.monotonic()
        await asyncio.gather(LoopTimer().wait(0.1), ticker())
        assert time.monotonic() - start >= 0.09
        assert len(ticks) == 3

    @pytest.mark.asyncio
    async def test_zero_wait_returns_immediately(self):
        await LoopTimer().wait(0)
