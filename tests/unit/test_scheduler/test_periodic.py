"""Unit tests for the periodic pipeline scheduler."""

import threading
from collections.abc import Generator
from datetime import datetime, timedelta

import pytest

from src.scheduler.clock import VirtualClock
from src.scheduler.periodic import PeriodicTask, PipelineScheduler
from src.store.errors import StoreUnavailableError
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def clock() -> VirtualClock:
    """Create a virtual clock."""
    return VirtualClock(FIXED_NOW)


@pytest.fixture
def runs() -> list[datetime]:
    """Collect scheduled times passed to a task."""
    return []


@pytest.fixture
def scheduler(
    clock: VirtualClock, runs: list[datetime]
) -> Generator[PipelineScheduler]:
    """Create a scheduler with one recording task."""
    task = PeriodicTask(name="collection", period=timedelta(minutes=10), action=runs.append)
    scheduler = PipelineScheduler([task], clock)
    yield scheduler
    scheduler.shutdown()


class TestPeriodicTask:
    """Tests for PeriodicTask."""

    def test_due_initially(self) -> None:
        """Tasks without next_run are due immediately."""
        task = PeriodicTask(name="t", period=timedelta(minutes=1), action=lambda now: None)
        assert task.is_due(FIXED_NOW)

    def test_due_at_next_run(self) -> None:
        """A task is due once next_run is reached."""
        task = PeriodicTask(
            name="t",
            period=timedelta(minutes=1),
            action=lambda now: None,
            next_run=FIXED_NOW,
        )
        assert not task.is_due(FIXED_NOW - timedelta(seconds=1))
        assert task.is_due(FIXED_NOW)


class TestPipelineScheduler:
    """Tests for PipelineScheduler.run_pending."""

    def test_runs_on_period(
        self,
        scheduler: PipelineScheduler,
        clock: VirtualClock,
        runs: list[datetime],
    ) -> None:
        """A task runs once per period on the scheduler clock."""
        for future in scheduler.run_pending():
            future.result(timeout=5)
        assert scheduler.run_pending() == []

        clock.advance(timedelta(minutes=10))
        for future in scheduler.run_pending():
            future.result(timeout=5)

        assert runs == [FIXED_NOW, FIXED_NOW + timedelta(minutes=10)]

    def test_skips_task_still_running(self, clock: VirtualClock) -> None:
        """A task is not started again while its previous run is in flight."""
        release = threading.Event()
        task = PeriodicTask(
            name="slow",
            period=timedelta(seconds=1),
            action=lambda now: release.wait(5),
        )
        scheduler = PipelineScheduler([task], clock)
        try:
            first = scheduler.run_pending()
            assert len(first) == 1

            clock.advance(timedelta(seconds=2))
            assert scheduler.run_pending() == []

            release.set()
            first[0].result(timeout=5)
            clock.advance(timedelta(seconds=2))
            assert len(scheduler.run_pending()) == 1
        finally:
            release.set()
            scheduler.shutdown()

    def test_failures_do_not_stop_schedule(self, clock: VirtualClock) -> None:
        """A failing task is logged and runs again next period."""
        calls: list[datetime] = []

        def failing(now: datetime) -> None:
            calls.append(now)
            raise StoreUnavailableError("list_subscribers", "database is locked")

        task = PeriodicTask(name="digest_tick", period=timedelta(seconds=30), action=failing)
        scheduler = PipelineScheduler([task], clock)
        try:
            for future in scheduler.run_pending():
                with pytest.raises(StoreUnavailableError):
                    future.result(timeout=5)

            clock.advance(timedelta(seconds=30))
            for future in scheduler.run_pending():
                with pytest.raises(StoreUnavailableError):
                    future.result(timeout=5)

            assert len(calls) == 2
        finally:
            scheduler.shutdown()

    def test_run_forever_stops(self, scheduler: PipelineScheduler) -> None:
        """run_forever polls until the stop event is set."""
        stop = threading.Event()
        polls: list[float] = []

        def fake_sleep(seconds: float) -> None:
            polls.append(seconds)
            if len(polls) == 3:
                stop.set()

        scheduler.run_forever(stop, poll_seconds=0.5, sleep=fake_sleep)

        assert polls == [0.5, 0.5, 0.5]
        assert [t.name for t in scheduler.tasks] == ["collection"]
