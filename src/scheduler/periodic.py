"""Periodic triggers for collection, processing and the digest tick."""

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from src.scheduler.clock import Clock
from src.store.errors import StoreUnavailableError


logger = structlog.get_logger()

DEFAULT_POLL_SECONDS = 1.0


@dataclass
class PeriodicTask:
    """An action run every ``period``.

    Attributes:
        name: Task name used in logs.
        period: Interval between runs.
        action: Callable receiving the scheduled time.
        next_run: Next due time (None runs on the first poll).
    """

    name: str
    period: timedelta
    action: Callable[[datetime], object]
    next_run: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        """Check if the task should run at ``now``."""
        return self.next_run is None or self.next_run <= now


class PipelineScheduler:
    """Runs independent periodic tasks on a worker pool.

    A task whose previous run is still in flight is skipped rather than
    stacked. Task failures are logged and never stop the loop.
    """

    def __init__(
        self,
        tasks: list[PeriodicTask],
        clock: Clock,
        max_workers: int | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            tasks: Tasks to run.
            clock: Time source.
            max_workers: Pool size (defaults to one worker per task).
        """
        self._tasks = tasks
        self._clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or max(1, len(tasks)),
            thread_name_prefix="pipeline",
        )
        self._in_flight: dict[str, Future[object]] = {}
        self._lock = threading.Lock()
        self._log = logger.bind(component="scheduler")

    @property
    def tasks(self) -> list[PeriodicTask]:
        """Get the scheduled tasks."""
        return list(self._tasks)

    def run_pending(self, now: datetime | None = None) -> list[Future[object]]:
        """Start every due task that is not already running.

        Args:
            now: Evaluation time (defaults to the clock).

        Returns:
            Futures of the runs started by this call.
        """
        now = now or self._clock.now()
        started: list[Future[object]] = []

        with self._lock:
            for task in self._tasks:
                if not task.is_due(now):
                    continue

                running = self._in_flight.get(task.name)
                if running is not None and not running.done():
                    self._log.warning("task_still_running", task=task.name)
                    continue

                task.next_run = now + task.period
                future = self._executor.submit(task.action, now)
                future.add_done_callback(self._make_reporter(task.name))
                self._in_flight[task.name] = future
                started.append(future)
                self._log.debug(
                    "task_started",
                    task=task.name,
                    next_run=task.next_run.isoformat(),
                )

        return started

    def _make_reporter(self, task_name: str) -> Callable[[Future[object]], None]:
        def report(future: Future[object]) -> None:
            if future.cancelled():
                return
            error = future.exception()
            if error is None:
                return
            if isinstance(error, StoreUnavailableError):
                self._log.error(
                    "task_store_unavailable",
                    task=task_name,
                    error=str(error),
                    alert=True,
                )
                return
            self._log.error(
                "task_failed",
                task=task_name,
                error_type=type(error).__name__,
                error=str(error),
            )

        return report

    def run_forever(
        self,
        stop_event: threading.Event,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        """Poll tasks until ``stop_event`` is set.

        Args:
            stop_event: Set to stop the loop.
            poll_seconds: Delay between polls.
            sleep: Wait function (defaults to ``stop_event.wait``).
        """
        wait = sleep or stop_event.wait
        self._log.info(
            "scheduler_started",
            tasks={t.name: t.period.total_seconds() for t in self._tasks},
        )
        while not stop_event.is_set():
            self.run_pending()
            wait(poll_seconds)
        self._log.info("scheduler_stopped")

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool."""
        self._executor.shutdown(wait=wait, cancel_futures=True)
