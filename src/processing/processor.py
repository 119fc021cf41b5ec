"""Event processor: claim, classify, score, persist."""

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from src.config.schemas.pipeline import RetryPolicy
from src.processing.classifier import Classification, EventClassifier
from src.processing.scorer import ImportanceScorer, ScoreBreakdown, ScoringFeatures
from src.store.errors import StateStoreError
from src.store.models import Event, EventStatus
from src.store.store import StateStore


if TYPE_CHECKING:
    from src.scheduler.clock import Clock

logger = structlog.get_logger()

# Stored error messages are truncated to this length
MAX_ERROR_LENGTH = 500


class ProcessingError(Exception):
    """Raised when classification or scoring of an event fails."""

    def __init__(self, event_id: str, message: str) -> None:
        """Initialize the error.

        Args:
            event_id: Event being processed.
            message: Failure description.
        """
        self.event_id = event_id
        self.message = message
        super().__init__(f"Processing failed for event {event_id}: {message}")


@dataclass
class ProcessingCycleResult:
    """Result of one processing cycle.

    Attributes:
        cycle_id: Identifier used in logs.
        claimed: Events this worker claimed.
        processed: Events moved to processed.
        errored: Events moved to errored.
        duration_ms: Cycle duration.
    """

    cycle_id: str
    claimed: int = 0
    processed: int = 0
    errored: int = 0
    duration_ms: float = 0.0


class EventProcessor:
    """Moves collected events to processed (or errored).

    Exactly one worker processes each event: an event is only worked on
    after this processor won the store's collected -> processing
    compare-and-swap. Any number of processors may run concurrently
    against the same database.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: StateStore,
        classifier: EventClassifier,
        scorer: ImportanceScorer,
        clock: "Clock",
        retry: RetryPolicy | None = None,
        batch_size: int = 50,
        max_batches: int = 20,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the processor.

        Args:
            store: State store holding events.
            classifier: Topic classifier.
            scorer: Importance scorer.
            clock: Time source for processed_at.
            retry: Retry policy for classification and scoring.
            batch_size: Events claimed per batch.
            max_batches: Batches per cycle.
            sleep: Sleep function used for backoff (seconds).
        """
        self._store = store
        self._classifier = classifier
        self._scorer = scorer
        self._clock = clock
        self._retry = retry or RetryPolicy()
        self._batch_size = batch_size
        self._max_batches = max_batches
        self._sleep = sleep
        self._log = logger.bind(component="processor")

    def watchlist(self) -> frozenset[str]:
        """Union of active subscribers' keywords, lowercased."""
        keywords: set[str] = set()
        for subscriber in self._store.list_subscribers(active_only=True):
            keywords |= subscriber.keyword_set
        return frozenset(keywords)

    def claim_batch(self, limit: int) -> list[Event]:
        """Claim up to ``limit`` collected events, oldest first.

        Only events whose compare-and-swap this call won are returned;
        events claimed concurrently by another worker are skipped.

        Args:
            limit: Maximum number of events to claim.

        Returns:
            Events now in processing status and owned by this caller.
        """
        _, claimed = self._claim(limit)
        return claimed

    def _claim(self, limit: int) -> tuple[int, list[Event]]:
        candidate_ids = self._store.list_event_ids(EventStatus.COLLECTED, limit)
        claimed: list[Event] = []
        for event_id in candidate_ids:
            if not self._store.transition(
                event_id, EventStatus.COLLECTED, EventStatus.PROCESSING
            ):
                self._log.debug("claim_lost", event_id=event_id)
                continue
            event = self._store.get_event(event_id)
            if event is None:
                continue
            self._log.debug("event_claimed", event_id=event_id)
            claimed.append(event)
        return len(candidate_ids), claimed

    def _features(
        self, event: Event, classification: Classification
    ) -> ScoringFeatures:
        age_hours: float | None = None
        if event.published_at is not None:
            age = event.collected_at - event.published_at
            age_hours = max(0.0, age.total_seconds() / 3600)
        return ScoringFeatures(
            source_trust=event.source_trust,
            age_hours=age_hours,
            category_tags=tuple(classification.category_tags),
            keyword_hits=classification.keyword_hits,
        )

    def _attempt(
        self, event: Event, watchlist: frozenset[str]
    ) -> tuple[Classification, ScoreBreakdown]:
        try:
            classification = self._classifier.classify(event, watchlist)
            breakdown = self._scorer.score(self._features(event, classification))
        except StateStoreError:
            raise
        except Exception as e:  # noqa: BLE001
            raise ProcessingError(event.id, f"{type(e).__name__}: {e}") from e
        return classification, breakdown

    def process_claimed(
        self,
        event: Event,
        watchlist: frozenset[str] | None = None,
    ) -> EventStatus:
        """Classify and score a claimed event, retrying with backoff.

        Args:
            event: Event in processing status owned by this caller.
            watchlist: Keywords to match; computed from the store if None.

        Returns:
            The terminal status written (processed or errored).

        Raises:
            StoreUnavailableError: If the result cannot be persisted.
        """
        if watchlist is None:
            watchlist = self.watchlist()

        log = self._log.bind(event_id=event.id, source_id=event.source_id)
        last_error = ""

        for attempt in range(self._retry.max_attempts):
            if attempt > 0:
                delay_ms = self._retry.get_delay_ms(attempt - 1)
                log.debug("retry_attempt", attempt=attempt + 1, delay_ms=delay_ms)
                self._sleep(delay_ms / 1000.0)

            try:
                classification, breakdown = self._attempt(event, watchlist)
            except ProcessingError as e:
                last_error = e.message
                log.warning(
                    "processing_attempt_failed",
                    attempt=attempt + 1,
                    max_attempts=self._retry.max_attempts,
                    error=e.message,
                )
                continue

            self._store.complete_processing(
                event.id,
                category_tags=classification.category_tags,
                matched_keywords=classification.matched_keywords,
                importance_score=round(breakdown.total, 4),
                attempts=attempt + 1,
                processed_at=self._clock.now(),
            )
            log.info(
                "event_processed",
                attempts=attempt + 1,
                importance_score=round(breakdown.total, 4),
                category_tags=[t.value for t in classification.category_tags],
            )
            return EventStatus.PROCESSED

        self._store.fail_processing(
            event.id,
            error=last_error[:MAX_ERROR_LENGTH],
            attempts=self._retry.max_attempts,
            failed_at=self._clock.now(),
        )
        log.error(
            "event_errored",
            attempts=self._retry.max_attempts,
            error=last_error,
        )
        return EventStatus.ERRORED

    def run_cycle(self, limit: int | None = None) -> ProcessingCycleResult:
        """Claim and process batches until none remain.

        Args:
            limit: Maximum events to claim this cycle (None = no limit
                beyond max_batches * batch_size).

        Returns:
            ProcessingCycleResult with counts.

        Raises:
            StoreUnavailableError: If the store fails during the cycle.
        """
        start_time_ns = time.perf_counter_ns()
        result = ProcessingCycleResult(cycle_id=uuid.uuid4().hex[:12])
        log = self._log.bind(cycle_id=result.cycle_id)
        log.info("processing_started", batch_size=self._batch_size)

        watchlist = self.watchlist()
        remaining = limit

        for _ in range(self._max_batches):
            batch_limit = self._batch_size
            if remaining is not None:
                if remaining <= 0:
                    break
                batch_limit = min(batch_limit, remaining)

            candidates, claimed = self._claim(batch_limit)
            if candidates == 0:
                break

            result.claimed += len(claimed)
            if remaining is not None:
                remaining -= len(claimed)

            for event in claimed:
                status = self.process_claimed(event, watchlist)
                if status == EventStatus.PROCESSED:
                    result.processed += 1
                else:
                    result.errored += 1

        result.duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        log.info(
            "processing_complete",
            claimed=result.claimed,
            processed=result.processed,
            errored=result.errored,
            duration_ms=round(result.duration_ms, 2),
        )
        return result
