"""Format verdict collection with deduplicated lookups."""

from __future__ import annotations

import logging
import time
from collections.abc import Hashable
from typing import Any

from geophoto.metrics import MetricsSink, NullMetrics
from geophoto.types import DetectionMethod, FormatVerdict, ValidationEvent
from geophoto.utils.cache import TTLCache
from geophoto.validate.detector import FormatDetector

logger = logging.getLogger(__name__)


class VerdictCollector:
    """Resolve format verdicts through a detector, caching by address.

    Verdicts are cached under ``(scope, address)``. The acquisition pipeline
    uses one scope per attempt so a retry re-validates its candidates, while
    repeats of the same address within an attempt are served from cache.
    Callers that pass no scope share one process-wide namespace.

    Every resolution, cached or not, is reported to the metrics sink.
    """

    def __init__(
        self,
        detector: FormatDetector,
        metrics: MetricsSink | None = None,
        cache: TTLCache[FormatVerdict] | None = None,
    ) -> None:
        self.detector = detector
        self.metrics = metrics or NullMetrics()
        self.cache: TTLCache[FormatVerdict] = cache if cache is not None else TTLCache()

    async def resolve(
        self,
        address: str,
        declared_mime_type: str | None = None,
        raw_metadata: dict[str, Any] | None = None,
        *,
        scope: Hashable = None,
        batch_size: int | None = None,
    ) -> FormatVerdict:
        """Return the verdict for ``address``.

        Args:
            address: Image URL.
            declared_mime_type: MIME type the source declared, passed to the
                detector as-is (``None`` when the source declared none).
            raw_metadata: Source metadata bag, passed to the detector.
            scope: Cache namespace.
            batch_size: Size of the batch this lookup belongs to, for metrics.

        Raises:
            Whatever the detector raises. The failure is reported to metrics
            first.
        """
        key = (scope, address)
        start = time.perf_counter()

        cached = self.cache.get(key)
        if cached is not None:
            self._report(address, cached.is_valid, cached.detection_method.cached,
                         start, cached=True, batch_size=batch_size)
            return cached

        try:
            verdict = await self.detector.detect(address, declared_mime_type, raw_metadata)
        except Exception:
            self._report(address, False, DetectionMethod.unknown, start, batch_size=batch_size)
            raise

        # Concurrent lookups of one address may both land here; last write wins.
        self.cache.set(key, verdict)
        self._report(
            address, verdict.is_valid, verdict.detection_method, start,
            network_probe=verdict.detection_method.is_network_probe, batch_size=batch_size,
        )
        if not verdict.is_valid:
            logger.debug(
                "Rejected %s via %s: %s",
                address, verdict.detection_method.value, verdict.rejection_reason,
            )
        return verdict

    def _report(
        self,
        address: str,
        success: bool,
        method: DetectionMethod,
        start: float,
        *,
        cached: bool = False,
        network_probe: bool = False,
        batch_size: int | None = None,
    ) -> None:
        self.metrics.record_validation(ValidationEvent(
            address=address,
            success=success,
            detection_method=method,
            was_cached=cached,
            was_network_probe=network_probe,
            batch_size=batch_size,
            duration_ms=(time.perf_counter() - start) * 1000.0,
        ))
