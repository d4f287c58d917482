"""Validation metrics: the sink protocol and an in-memory aggregator."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from geophoto.types import BatchEvent, ValidationEvent

logger = logging.getLogger(__name__)

# Health targets
MAX_AVERAGE_MS = 100.0
MIN_CACHE_HIT_RATE = 60.0
MIN_SUCCESS_RATE = 90.0
MAX_NETWORK_PROBE_RATIO = 30.0

# Window used for the cache hit rate
RECENT_WINDOW = 100


@runtime_checkable
class MetricsSink(Protocol):
    """Receives validation outcomes. Return values are ignored."""

    def record_validation(self, event: ValidationEvent) -> None: ...

    def record_batch(self, event: BatchEvent) -> None: ...


class NullMetrics:
    """Sink that drops everything."""

    def record_validation(self, event: ValidationEvent) -> None:
        pass

    def record_batch(self, event: BatchEvent) -> None:
        pass


@dataclass(frozen=True)
class MethodStats:
    count: int
    average_ms: float
    success_rate: float  # percent


@dataclass(frozen=True)
class MetricsSnapshot:
    total_validations: int
    successful_validations: int
    failed_validations: int
    average_ms: float
    min_ms: float
    max_ms: float
    cache_hit_rate: float  # percent, over the recent window
    network_probe_count: int
    batch_count: int
    average_batch_size: float
    method_stats: dict[str, MethodStats] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.total_validations == 0:
            return 100.0
        return 100.0 * self.successful_validations / self.total_validations


@dataclass(frozen=True)
class HealthReport:
    healthy: bool
    issues: list[str]
    recommendations: list[str]


@dataclass
class _MethodTotals:
    count: int = 0
    total_ms: float = 0.0
    successes: int = 0


class ValidationMetrics:
    """Thread-safe aggregator satisfying :class:`MetricsSink`.

    Keeps running totals plus the last ``max_records`` validation events.
    Per-method stats are keyed by the reported method value, so cached
    lookups ("mime-type-cached") are counted apart from fresh ones.
    """

    def __init__(self, max_records: int = 1000) -> None:
        self.max_records = max_records
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._records: deque[ValidationEvent] = deque(maxlen=self.max_records)
            self._total = 0
            self._successes = 0
            self._total_ms = 0.0
            self._min_ms = float("inf")
            self._max_ms = 0.0
            self._network_probes = 0
            self._batches = 0
            self._batch_items = 0
            self._methods: dict[str, _MethodTotals] = {}

    def record_validation(self, event: ValidationEvent) -> None:
        with self._lock:
            self._records.append(event)
            self._total += 1
            if event.success:
                self._successes += 1
            self._total_ms += event.duration_ms
            self._min_ms = min(self._min_ms, event.duration_ms)
            self._max_ms = max(self._max_ms, event.duration_ms)
            if event.was_network_probe:
                self._network_probes += 1

            totals = self._methods.setdefault(event.detection_method.value, _MethodTotals())
            totals.count += 1
            totals.total_ms += event.duration_ms
            if event.success:
                totals.successes += 1

    def record_batch(self, event: BatchEvent) -> None:
        with self._lock:
            self._batches += 1
            self._batch_items += event.batch_size
        logger.debug(
            "Validated batch of %d in %.1fms (%d accepted)",
            event.batch_size, event.total_duration_ms, event.success_count,
        )

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            recent = list(self._records)[-RECENT_WINDOW:]
            hits = sum(1 for r in recent if r.was_cached)
            cache_hit_rate = 100.0 * hits / len(recent) if recent else 0.0
            return MetricsSnapshot(
                total_validations=self._total,
                successful_validations=self._successes,
                failed_validations=self._total - self._successes,
                average_ms=round(self._total_ms / self._total, 2) if self._total else 0.0,
                min_ms=0.0 if self._min_ms == float("inf") else self._min_ms,
                max_ms=self._max_ms,
                cache_hit_rate=round(cache_hit_rate, 2),
                network_probe_count=self._network_probes,
                batch_count=self._batches,
                average_batch_size=(
                    round(self._batch_items / self._batches, 2) if self._batches else 0.0
                ),
                method_stats={
                    method: MethodStats(
                        count=t.count,
                        average_ms=t.total_ms / t.count if t.count else 0.0,
                        success_rate=100.0 * t.successes / t.count if t.count else 0.0,
                    )
                    for method, t in self._methods.items()
                },
            )

    def summary(self) -> str:
        """One-paragraph performance summary for logs and the CLI."""
        m = self.snapshot()
        return (
            "Format validation summary: "
            f"{m.total_validations} validations, "
            f"{m.success_rate:.0f}% accepted, "
            f"avg {m.average_ms}ms, "
            f"cache hit rate {m.cache_hit_rate}%, "
            f"{m.network_probe_count} network probes, "
            f"{m.batch_count} batches (avg size {m.average_batch_size})"
        )

    def check_health(self) -> HealthReport:
        m = self.snapshot()
        issues: list[str] = []
        recommendations: list[str] = []

        if m.average_ms > MAX_AVERAGE_MS:
            issues.append(f"Average validation time is {m.average_ms}ms (target: <{MAX_AVERAGE_MS:.0f}ms)")
            recommendations.append("Consider optimizing detection strategies or increasing cache TTL")

        if m.cache_hit_rate < MIN_CACHE_HIT_RATE:
            issues.append(f"Cache hit rate is {m.cache_hit_rate}% (target: >{MIN_CACHE_HIT_RATE:.0f}%)")
            recommendations.append("Consider increasing cache size or TTL")

        if m.success_rate < MIN_SUCCESS_RATE:
            issues.append(f"Success rate is {m.success_rate:.1f}% (target: >{MIN_SUCCESS_RATE:.0f}%)")
            recommendations.append("Review format detection strategies and error handling")

        probe_ratio = 100.0 * m.network_probe_count / m.total_validations if m.total_validations else 0.0
        if probe_ratio > MAX_NETWORK_PROBE_RATIO:
            issues.append(
                f"Network probe ratio is {probe_ratio:.1f}% (target: <{MAX_NETWORK_PROBE_RATIO:.0f}%)"
            )
            recommendations.append(
                "Improve MIME type and URL extension detection to reduce HTTP fallbacks"
            )

        return HealthReport(healthy=not issues, issues=issues, recommendations=recommendations)
