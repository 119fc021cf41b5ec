"""Integration tests for at-most-once digest delivery per slot."""

import threading
from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.composer.composer import DigestComposer
from src.delivery.base import DeliveryResult
from src.scheduler.clock import VirtualClock
from src.scheduler.digest import DigestScheduler, DispatchResult
from src.scheduler.selector import CandidateSelector
from src.store.models import SlotStatus, Topic
from src.store.store import StateStore
from tests.helpers.builders import insert_processed_event, make_subscriber
from tests.helpers.time import FIXED_NOW


TICK_AT = FIXED_NOW + timedelta(minutes=1)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Seed a database with a subscriber and one candidate."""
    path = tmp_path / "digest.sqlite"
    with StateStore(path) as store:
        store.upsert_subscriber(
            make_subscriber(interests=[Topic.AI], delivery_slots=["12:00"])
        )
        insert_processed_event(store, "AI story", [Topic.AI], 8.0)
    return path


@pytest.fixture
def channel() -> MagicMock:
    """Create a channel that always delivers."""
    channel = MagicMock()
    channel.send.return_value = DeliveryResult.delivered()
    return channel


def make_scheduler(store: StateStore, channel: MagicMock) -> DigestScheduler:
    """Create a scheduler over its own store instance."""
    return DigestScheduler(
        store=store,
        selector=CandidateSelector(store),
        composer=DigestComposer(),
        channel=channel,
        clock=VirtualClock(TICK_AT),
    )


@pytest.fixture
def stores(db_path: Path) -> Generator[list[StateStore]]:
    """Open independent store instances on the same file."""
    opened = [StateStore(db_path) for _ in range(3)]
    for store in opened:
        store.connect()
    yield opened
    for store in opened:
        store.close()


def tick_and_wait(scheduler: DigestScheduler) -> list[DispatchResult]:
    """Tick once and wait for the started dispatches."""
    return [future.result(timeout=10) for future in scheduler.tick()]


@pytest.mark.integration
class TestDigestIdempotency:
    """Tests for the slot ledger under concurrency and restarts."""

    def test_overlapping_ticks_send_once(
        self, stores: list[StateStore], channel: MagicMock
    ) -> None:
        """Concurrent schedulers on one database deliver a slot once."""
        schedulers = [make_scheduler(store, channel) for store in stores]
        barrier = threading.Barrier(len(schedulers))

        def run(scheduler: DigestScheduler) -> list[DispatchResult]:
            barrier.wait(timeout=10)
            return tick_and_wait(scheduler)

        try:
            with ThreadPoolExecutor(max_workers=len(schedulers)) as pool:
                results = [r for batch in pool.map(run, schedulers) for r in batch]
        finally:
            for scheduler in schedulers:
                scheduler.shutdown()

        assert len(results) == 1
        assert results[0].status == SlotStatus.SENT
        assert channel.send.call_count == 1

    def test_restart_does_not_resend(
        self, db_path: Path, channel: MagicMock
    ) -> None:
        """A restarted scheduler skips slots completed before the restart."""
        with StateStore(db_path) as store:
            first = make_scheduler(store, channel)
            assert [r.status for r in tick_and_wait(first)] == [SlotStatus.SENT]
            first.shutdown()

        with StateStore(db_path) as store:
            second = make_scheduler(store, channel)
            assert second.tick(TICK_AT + timedelta(minutes=2)) == []
            second.shutdown()

        assert channel.send.call_count == 1

    def test_interrupted_claim_is_not_retried(
        self, db_path: Path, channel: MagicMock
    ) -> None:
        """A slot claimed before a crash is not dispatched again."""
        with StateStore(db_path) as store:
            assert store.claim_slot("sub-1", "12:00", "2025-03-10", TICK_AT)

        with StateStore(db_path) as store:
            scheduler = make_scheduler(store, channel)
            assert scheduler.tick() == []
            scheduler.shutdown()
            slot = store.get_slot("sub-1", "12:00", "2025-03-10")
            assert slot is not None and slot.status == SlotStatus.CLAIMED

        channel.send.assert_not_called()

    def test_next_day_slot_is_new(
        self, db_path: Path, channel: MagicMock
    ) -> None:
        """The same slot on the following local day is evaluated again."""
        with StateStore(db_path) as store:
            scheduler = make_scheduler(store, channel)
            tick_and_wait(scheduler)
            insert_processed_event(
                store,
                "Next day AI story",
                [Topic.AI],
                8.0,
                collected_at=FIXED_NOW + timedelta(hours=20),
            )
            futures = scheduler.tick(TICK_AT + timedelta(days=1))
            next_day = [f.result(timeout=10) for f in futures]
            scheduler.shutdown()

        assert [r.local_date for r in next_day] == ["2025-03-11"]
        assert next_day[0].status == SlotStatus.SENT
        assert channel.send.call_count == 2
