"""Unit tests for the digest scheduler."""

from collections.abc import Generator
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.composer.composer import DigestComposer
from src.config.schemas.pipeline import RetryPolicy
from src.delivery.base import DeliveryError, DeliveryResult, FailureKind
from src.scheduler.clock import VirtualClock
from src.scheduler.digest import DigestScheduler, DispatchResult
from src.scheduler.selector import CandidateSelector
from src.store.models import SlotStatus, Topic
from src.store.store import StateStore
from tests.helpers.builders import insert_processed_event, make_subscriber
from tests.helpers.time import FIXED_NOW


TICK_AT = FIXED_NOW + timedelta(minutes=1)
LOCAL_DATE = "2025-03-10"


@pytest.fixture
def store(tmp_path: Path) -> Generator[StateStore]:
    """Create a connected state store with one subscriber."""
    store = StateStore(tmp_path / "state.sqlite")
    store.connect()
    store.upsert_subscriber(make_subscriber(interests=[Topic.AI], delivery_slots=["12:00"]))
    yield store
    store.close()


@pytest.fixture
def channel() -> MagicMock:
    """Create a delivery channel that succeeds."""
    channel = MagicMock()
    channel.send.return_value = DeliveryResult.delivered()
    return channel


@pytest.fixture
def sleeps() -> list[float]:
    """Record backoff sleeps."""
    return []


@pytest.fixture
def scheduler(
    store: StateStore, channel: MagicMock, sleeps: list[float]
) -> Generator[DigestScheduler]:
    """Create a digest scheduler on virtual time."""
    scheduler = DigestScheduler(
        store=store,
        selector=CandidateSelector(store),
        composer=DigestComposer(),
        channel=channel,
        clock=VirtualClock(TICK_AT),
        delivery_retry=RetryPolicy(max_attempts=3, base_delay_ms=1000),
        sleep=sleeps.append,
    )
    yield scheduler
    scheduler.shutdown()


def run_tick(scheduler: DigestScheduler) -> list[DispatchResult]:
    """Tick once and wait for all dispatches."""
    return [future.result(timeout=10) for future in scheduler.tick()]


class TestDigestScheduler:
    """Tests for DigestScheduler."""

    def test_sends_digest(
        self, store: StateStore, scheduler: DigestScheduler, channel: MagicMock
    ) -> None:
        """A due slot with candidates is delivered and recorded."""
        event = insert_processed_event(store, "AI story", [Topic.AI], 8.0)

        results = run_tick(scheduler)

        assert len(results) == 1
        assert results[0].status == SlotStatus.SENT
        assert results[0].event_ids == [event.id]
        channel.send.assert_called_once()
        assert store.get_delivered_event_ids("sub-1") == {event.id}
        slot = store.get_slot("sub-1", "12:00", LOCAL_DATE)
        assert slot is not None
        assert slot.status == SlotStatus.SENT
        assert slot.event_ids == [event.id]

    def test_slot_evaluated_once(
        self, store: StateStore, scheduler: DigestScheduler, channel: MagicMock
    ) -> None:
        """A second tick inside the same window does nothing."""
        insert_processed_event(store, "AI story", [Topic.AI], 8.0)

        run_tick(scheduler)
        insert_processed_event(store, "Another AI story", [Topic.AI], 8.0)

        assert scheduler.tick(TICK_AT + timedelta(minutes=2)) == []
        assert channel.send.call_count == 1

    def test_empty_digest_not_sent(
        self, store: StateStore, scheduler: DigestScheduler, channel: MagicMock
    ) -> None:
        """Without candidates the slot is recorded empty and nothing is sent."""
        results = run_tick(scheduler)

        assert results[0].status == SlotStatus.EMPTY
        channel.send.assert_not_called()
        slot = store.get_slot("sub-1", "12:00", LOCAL_DATE)
        assert slot is not None and slot.status == SlotStatus.EMPTY

    def test_not_due(self, scheduler: DigestScheduler) -> None:
        """Nothing is claimed outside the slot window."""
        assert scheduler.tick(FIXED_NOW - timedelta(hours=1)) == []

    def test_inactive_subscriber_skipped(
        self, store: StateStore, scheduler: DigestScheduler
    ) -> None:
        """Inactive subscribers get no digests."""
        store.upsert_subscriber(make_subscriber(active=False))
        assert scheduler.tick() == []

    def test_transient_failure_retried_with_same_payload(
        self,
        store: StateStore,
        scheduler: DigestScheduler,
        channel: MagicMock,
        sleeps: list[float],
    ) -> None:
        """Transient failures are retried with backoff and the same payload."""
        insert_processed_event(store, "AI story", [Topic.AI], 8.0)
        transient = DeliveryResult.from_error(
            DeliveryError(FailureKind.TRANSIENT, "SMTP 421")
        )
        channel.send.side_effect = [transient, DeliveryResult.delivered()]

        results = run_tick(scheduler)

        assert results[0].status == SlotStatus.SENT
        assert results[0].attempts == 2
        assert sleeps == [1.0]
        first_payload = channel.send.call_args_list[0].args[1]
        second_payload = channel.send.call_args_list[1].args[1]
        assert first_payload is second_payload

    def test_transient_failures_exhausted(
        self,
        store: StateStore,
        scheduler: DigestScheduler,
        channel: MagicMock,
        sleeps: list[float],
    ) -> None:
        """After the last attempt the slot fails and nothing is marked delivered."""
        insert_processed_event(store, "AI story", [Topic.AI], 8.0)
        channel.send.return_value = DeliveryResult.from_error(
            DeliveryError(FailureKind.TRANSIENT, "Connection failed")
        )

        results = run_tick(scheduler)

        assert results[0].status == SlotStatus.FAILED
        assert results[0].attempts == 3
        assert sleeps == [1.0, 2.0]
        assert store.get_delivered_event_ids("sub-1") == set()

    def test_permanent_failure_not_retried(
        self, store: StateStore, scheduler: DigestScheduler, channel: MagicMock
    ) -> None:
        """Permanent failures end the dispatch immediately."""
        insert_processed_event(store, "AI story", [Topic.AI], 8.0)
        channel.send.return_value = DeliveryResult.from_error(
            DeliveryError(FailureKind.PERMANENT, "Recipient refused")
        )

        results = run_tick(scheduler)

        assert results[0].status == SlotStatus.FAILED
        assert results[0].attempts == 1
        slot = store.get_slot("sub-1", "12:00", LOCAL_DATE)
        assert slot is not None
        assert slot.failure_reason == "Recipient refused"

    def test_unexpected_error_marks_slot_failed(
        self, store: StateStore, scheduler: DigestScheduler, channel: MagicMock
    ) -> None:
        """A crashing channel fails the slot instead of leaving it claimed."""
        insert_processed_event(store, "AI story", [Topic.AI], 8.0)
        channel.send.side_effect = RuntimeError("boom")

        results = run_tick(scheduler)

        assert results[0].status == SlotStatus.FAILED
        assert results[0].failure_reason == "RuntimeError: boom"
        slot = store.get_slot("sub-1", "12:00", LOCAL_DATE)
        assert slot is not None and slot.status == SlotStatus.FAILED
