"""Acquisition pipeline: search, describe, validate, decide.

Each call to :meth:`AcquisitionPipeline.fetch` runs up to ``max_attempts``
attempts. An attempt moves through four stages:

    SEARCHING          geosearch every location of the attempt concurrently
    FETCHING_METADATA  describe the de-duplicated hits in one call
    VALIDATING         resolve a format verdict for every candidate
    DECIDING           return, back off and retry, or fail

Accepted photos accumulate across attempts in discovery order. When attempts
run out the caller gets a partial batch if anything was accepted, otherwise
a terminal :class:`~geophoto.errors.AcquisitionError`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from geophoto.acquire.base import PhotoSource
from geophoto.acquire.locations import SearchStrategy
from geophoto.classify import ErrorClassifier
from geophoto.config import AcquisitionConfig
from geophoto.errors import FetchExhaustedError, InsufficientPhotosError
from geophoto.metrics import MetricsSink, NullMetrics
from geophoto.retry import LoopTimer, Timer, backoff_delay
from geophoto.types import (
    AcceptedPhoto,
    AcquisitionOutcome,
    AttemptState,
    BatchEvent,
    CandidatePhoto,
    Coordinates,
    ErrorRecord,
    OutcomeStatus,
    SearchHit,
)
from geophoto.validate.verdicts import VerdictCollector

logger = logging.getLogger(__name__)

FETCH_CONTEXT = "photo search"


class AcquisitionPipeline:
    """Fetch a batch of geotagged photos whose format passes validation.

    Satisfies :class:`~geophoto.acquire.base.PhotoAcquirer`.

    Args:
        source: Data source queried for hits and metadata.
        collector: Resolves (and caches) format verdicts.
        config: Attempt count, radius growth, concurrency and backoff.
        strategy: Location/radius chooser. When omitted each ``fetch`` call
            builds its own, so concurrent invocations never share a pool.
        classifier: Classifies stage failures.
        metrics: Receives one :class:`BatchEvent` per validation pass.
        timer: Realizes the backoff between attempts.
    """

    def __init__(
        self,
        source: PhotoSource,
        collector: VerdictCollector,
        config: AcquisitionConfig | None = None,
        strategy: SearchStrategy | None = None,
        classifier: ErrorClassifier | None = None,
        metrics: MetricsSink | None = None,
        timer: Timer | None = None,
    ) -> None:
        self.source = source
        self.collector = collector
        self.config = config or AcquisitionConfig()
        self.strategy = strategy
        self.classifier = classifier or ErrorClassifier()
        self.metrics = metrics or NullMetrics()
        self.timer = timer or LoopTimer()

    async def fetch(
        self, requested_count: int, *, cancel_event: asyncio.Event | None = None
    ) -> AcquisitionOutcome:
        """Acquire ``requested_count`` photos.

        Args:
            requested_count: How many accepted photos to return (>= 1).
            cancel_event: When set, no further attempt or backoff is started
                and :class:`asyncio.CancelledError` is raised instead.

        Returns:
            A SUCCESS outcome with exactly ``requested_count`` photos, or a
            PARTIAL outcome with fewer once attempts are exhausted.

        Raises:
            ValueError: ``requested_count`` is below 1.
            FetchExhaustedError: Search or metadata retrieval failed on every
                attempt made.
            InsufficientPhotosError: Nothing passed validation.
        """
        if requested_count < 1:
            raise ValueError(f"requested_count must be >= 1, got {requested_count}")

        state = AttemptState(requested_count=requested_count, max_attempts=self.config.max_attempts)
        strategy = self.strategy or SearchStrategy(self.config)
        invocation = object()
        cause: ErrorRecord | None = None

        while state.can_retry:
            _raise_if_cancelled(cancel_event)
            state.attempts_used += 1
            attempt = state.attempts_used
            logger.info(
                "Attempt %d/%d: %d of %d photos accepted so far",
                attempt, state.max_attempts, len(state.accepted), requested_count,
            )

            try:
                candidates = await self._collect_candidates(strategy, attempt)
            except Exception as exc:
                state.fetch_failures += 1
                cause = self.classifier.classify(exc, FETCH_CONTEXT)
                self.classifier.log_error(cause, FETCH_CONTEXT)
                if not self.classifier.is_retryable(cause):
                    break
            else:
                added = await self._validate(candidates, state, scope=(invocation, attempt))
                logger.info(
                    "Attempt %d accepted %d of %d candidates", attempt, added, len(candidates),
                )

            # DECIDING
            if state.satisfied:
                photos = tuple(state.accepted[:requested_count])
                return AcquisitionOutcome(
                    status=OutcomeStatus.success,
                    photos=photos,
                    requested_count=requested_count,
                    attempts_used=state.attempts_used,
                )
            if state.can_retry:
                _raise_if_cancelled(cancel_event)
                await self.timer.wait(backoff_delay(
                    attempt,
                    self.config.attempt_delay_seconds,
                    self.config.max_attempt_delay_seconds,
                ))

        return self._finish(state, cause)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _collect_candidates(self, strategy: SearchStrategy, attempt: int) -> list[CandidatePhoto]:
        """SEARCHING and FETCHING_METADATA. Any failure propagates."""
        locations = strategy.locations_for(attempt)
        logger.debug(
            "Searching %s within %dm",
            ", ".join(loc.name for loc in locations), strategy.radius_for(attempt),
        )
        results = await asyncio.gather(
            *(self.source.search(loc) for loc in locations), return_exceptions=True,
        )
        hits: dict[str, SearchHit] = {}
        for result in results:
            if isinstance(result, BaseException):
                raise result
            for hit in result:
                hits.setdefault(hit.title, hit)
        if not hits:
            return []

        metadata = await self.source.get_metadata(list(hits.values()))

        candidates = []
        for title, hit in hits.items():
            bag = metadata.get(title)
            if not bag or not bag.get("url"):
                continue
            coords = bag.get("coordinates")
            candidates.append(CandidatePhoto(
                id=title,
                url=bag["url"],
                coordinates=coords if isinstance(coords, Coordinates) else hit.coordinates,
                metadata=dict(bag),
            ))
        return candidates

    async def _validate(
        self, candidates: list[CandidatePhoto], state: AttemptState, scope: Any
    ) -> int:
        """VALIDATING. Returns how many photos this attempt newly accepted."""
        if not candidates:
            return 0

        semaphore = asyncio.Semaphore(self.config.validation_concurrency)
        batch_size = len(candidates)
        start = time.perf_counter()

        async def resolve(candidate: CandidatePhoto) -> AcceptedPhoto | None:
            async with semaphore:
                try:
                    verdict = await self.collector.resolve(
                        candidate.url,
                        candidate.declared_mime_type,
                        candidate.metadata,
                        scope=scope,
                        batch_size=batch_size,
                    )
                    if not verdict.is_valid:
                        return None
                    return AcceptedPhoto.from_verdict(candidate, verdict)
                except Exception as exc:
                    logger.debug("Validation of %s failed: %s", candidate.url, exc, exc_info=True)
                    return None

        photos = await asyncio.gather(*(resolve(c) for c in candidates))

        passed = 0
        added = 0
        for photo in photos:
            if photo is None:
                continue
            passed += 1
            if state.add(photo):
                added += 1

        self.metrics.record_batch(BatchEvent(
            batch_size=batch_size,
            total_duration_ms=(time.perf_counter() - start) * 1000.0,
            success_count=passed,
        ))
        return added

    def _finish(self, state: AttemptState, cause: ErrorRecord | None) -> AcquisitionOutcome:
        """Terminal decision once no further attempt will run."""
        if state.accepted:
            logger.warning(
                "Returning partial batch: %d of %d photos after %d attempt(s)",
                len(state.accepted), state.requested_count, state.attempts_used,
            )
            return AcquisitionOutcome(
                status=OutcomeStatus.partial,
                photos=tuple(state.accepted),
                requested_count=state.requested_count,
                attempts_used=state.attempts_used,
            )
        if state.every_attempt_failed_fetching:
            raise FetchExhaustedError(state.attempts_used, cause_record=cause)
        raise InsufficientPhotosError(state.requested_count, state.attempts_used, cause_record=cause)


def _raise_if_cancelled(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError()
