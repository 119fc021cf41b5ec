"""Digest scheduler: due-slot detection, claiming and dispatch."""

import time
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from src.composer.composer import DigestComposer
from src.config.schemas.pipeline import RetryPolicy
from src.delivery.base import DeliveryChannel, DeliveryResult
from src.scheduler.clock import Clock
from src.scheduler.selector import CandidateSelector
from src.scheduler.slots import DEFAULT_SLOT_TOLERANCE, DueSlot, due_slots
from src.store.errors import StateStoreError, StoreUnavailableError
from src.store.models import SlotStatus, Subscriber
from src.store.store import StateStore


logger = structlog.get_logger()

DEFAULT_DISPATCH_WORKERS = 4


@dataclass
class DispatchResult:
    """Outcome of one slot dispatch."""

    subscriber_id: str
    slot: str
    local_date: str
    status: SlotStatus
    event_ids: list[str] = field(default_factory=list)
    attempts: int = 0
    failure_reason: str | None = None


class DigestScheduler:
    """Decides which delivery slots are due and dispatches digests.

    ``tick`` claims every due (subscriber, slot, local day) in the slot
    ledger before doing any work, so overlapping ticks, concurrent
    schedulers and restarts never evaluate the same slot twice. Claimed
    slots are dispatched on an executor; ``tick`` never waits for them.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: StateStore,
        selector: CandidateSelector,
        composer: DigestComposer,
        channel: DeliveryChannel,
        clock: Clock,
        executor: Executor | None = None,
        tolerance: timedelta = DEFAULT_SLOT_TOLERANCE,
        delivery_retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: State store.
            selector: Candidate selector.
            composer: Digest composer.
            channel: Delivery channel.
            clock: Time source used when ``tick`` gets no explicit time.
            executor: Executor for dispatches (a thread pool by default).
            tolerance: Window after a slot time in which it is due.
            delivery_retry: Retry policy for transient delivery failures.
            sleep: Sleep function used for backoff (seconds).
        """
        self._store = store
        self._selector = selector
        self._composer = composer
        self._channel = channel
        self._clock = clock
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=DEFAULT_DISPATCH_WORKERS,
            thread_name_prefix="dispatch",
        )
        self._tolerance = tolerance
        self._retry = delivery_retry or RetryPolicy()
        self._sleep = sleep
        self._log = logger.bind(component="scheduler")

    def tick(self, now: datetime | None = None) -> list[Future[DispatchResult]]:
        """Claim and dispatch every slot due at ``now``.

        Args:
            now: Evaluation time (defaults to the clock).

        Returns:
            Futures of the dispatches started by this tick.

        Raises:
            StoreUnavailableError: If subscribers or the ledger cannot be read.
        """
        now = now or self._clock.now()
        futures: list[Future[DispatchResult]] = []

        for subscriber in self._store.list_subscribers(active_only=True):
            for due in due_slots(subscriber, now, self._tolerance):
                claimed = self._store.claim_slot(
                    subscriber.id, due.slot, due.local_date, now
                )
                if not claimed:
                    self._log.debug(
                        "slot_already_claimed",
                        subscriber_id=subscriber.id,
                        slot=due.slot,
                        local_date=due.local_date,
                    )
                    continue

                self._log.info(
                    "slot_claimed",
                    subscriber_id=subscriber.id,
                    slot=due.slot,
                    local_date=due.local_date,
                )
                futures.append(
                    self._executor.submit(self._dispatch_safely, subscriber, due, now)
                )

        return futures

    def _dispatch_safely(
        self, subscriber: Subscriber, due: DueSlot, now: datetime
    ) -> DispatchResult:
        """Run a dispatch, turning unexpected errors into a failed slot."""
        try:
            return self.dispatch(subscriber, due, now)
        except Exception as e:  # noqa: BLE001
            reason = f"{type(e).__name__}: {e}"
            self._log.error(
                "dispatch_failed",
                subscriber_id=subscriber.id,
                slot=due.slot,
                local_date=due.local_date,
                error=reason,
                alert=isinstance(e, StoreUnavailableError),
            )
            try:
                self._store.complete_slot(
                    subscriber.id,
                    due.slot,
                    due.local_date,
                    SlotStatus.FAILED,
                    now,
                    failure_reason=reason,
                )
            except StateStoreError as store_error:
                self._log.error(
                    "slot_record_failed",
                    subscriber_id=subscriber.id,
                    slot=due.slot,
                    error=str(store_error),
                    alert=True,
                )
            return DispatchResult(
                subscriber_id=subscriber.id,
                slot=due.slot,
                local_date=due.local_date,
                status=SlotStatus.FAILED,
                failure_reason=reason,
            )

    def dispatch(
        self, subscriber: Subscriber, due: DueSlot, now: datetime
    ) -> DispatchResult:
        """Select, compose and deliver one claimed slot.

        The payload and candidate set are fixed before the first attempt and
        reused for every retry. UserEvents are written only after a
        successful delivery.

        Args:
            subscriber: Recipient profile.
            due: The claimed slot.
            now: Dispatch time (becomes ``delivered_at``).

        Returns:
            DispatchResult describing the final slot status.
        """
        log = self._log.bind(
            subscriber_id=subscriber.id,
            slot=due.slot,
            local_date=due.local_date,
        )

        candidates = self._selector.select(subscriber, now)
        if not candidates:
            self._store.complete_slot(
                subscriber.id, due.slot, due.local_date, SlotStatus.EMPTY, now
            )
            log.info("digest_empty")
            return DispatchResult(
                subscriber_id=subscriber.id,
                slot=due.slot,
                local_date=due.local_date,
                status=SlotStatus.EMPTY,
            )

        payload = self._composer.compose(subscriber, candidates, now)

        result = DeliveryResult(success=False, reason="not attempted")
        attempts = 0
        for attempt in range(self._retry.max_attempts):
            if attempt > 0:
                delay_ms = self._retry.get_delay_ms(attempt - 1)
                log.info("delivery_retry", attempt=attempt + 1, delay_ms=delay_ms)
                self._sleep(delay_ms / 1000.0)

            attempts = attempt + 1
            result = self._channel.send(subscriber, payload)
            if result.success or not result.is_transient:
                break

        if result.success:
            self._store.create_user_events(subscriber.id, payload.event_ids, now)
            self._store.complete_slot(
                subscriber.id,
                due.slot,
                due.local_date,
                SlotStatus.SENT,
                now,
                event_ids=payload.event_ids,
                attempts=attempts,
            )
            log.info(
                "digest_sent",
                item_count=len(payload.event_ids),
                attempts=attempts,
            )
            return DispatchResult(
                subscriber_id=subscriber.id,
                slot=due.slot,
                local_date=due.local_date,
                status=SlotStatus.SENT,
                event_ids=payload.event_ids,
                attempts=attempts,
            )

        reason = result.reason or "delivery failed"
        self._store.complete_slot(
            subscriber.id,
            due.slot,
            due.local_date,
            SlotStatus.FAILED,
            now,
            event_ids=payload.event_ids,
            attempts=attempts,
            failure_reason=reason,
        )
        log.warning(
            "digest_failed",
            attempts=attempts,
            failure_kind=result.failure_kind.value if result.failure_kind else None,
            reason=reason,
        )
        return DispatchResult(
            subscriber_id=subscriber.id,
            slot=due.slot,
            local_date=due.local_date,
            status=SlotStatus.FAILED,
            event_ids=payload.event_ids,
            attempts=attempts,
            failure_reason=reason,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop the dispatch executor if this scheduler created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
