"""Collection runner with bounded concurrency and failure isolation."""

import math
import threading
import time
import uuid
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from src.collectors.base import (
    DEFAULT_SOURCE_TIMEOUT_SECONDS,
    RawItem,
    SourceCollector,
)
from src.collectors.errors import (
    CollectionError,
    CollectionTimeoutError,
    CollectorErrorClass,
    ErrorRecord,
)
from src.collectors.metrics import CollectorMetrics
from src.config.schemas.base import SourceMethod
from src.config.schemas.sources import SourceConfig
from src.store.errors import StoreUnavailableError
from src.store.models import IngestOutcome
from src.store.store import StateStore


if TYPE_CHECKING:
    from src.dedup.deduper import Deduplicator

logger = structlog.get_logger()

# Slack added to the overall wait bound on top of the per-source deadlines
OVERALL_GRACE_SECONDS = 10.0


@dataclass
class SourceRunResult:
    """Result of collecting a single source."""

    source_id: str
    method: str
    items_seen: int = 0
    items_new: int = 0
    items_duplicate: int = 0
    duration_ms: float = 0.0
    error: ErrorRecord | None = None

    @property
    def success(self) -> bool:
        """Check if the source was collected successfully."""
        return self.error is None


@dataclass
class CollectionCycleResult:
    """Result of one collection cycle over all sources."""

    cycle_id: str
    started_at: datetime
    finished_at: datetime
    source_results: dict[str, SourceRunResult] = field(default_factory=dict)

    @property
    def total_new(self) -> int:
        """Get number of new events across sources."""
        return sum(r.items_new for r in self.source_results.values())

    @property
    def total_duplicates(self) -> int:
        """Get number of duplicate items across sources."""
        return sum(r.items_duplicate for r in self.source_results.values())

    @property
    def sources_succeeded(self) -> int:
        """Get number of successful sources."""
        return sum(1 for r in self.source_results.values() if r.success)

    @property
    def sources_failed(self) -> int:
        """Get number of failed sources."""
        return sum(1 for r in self.source_results.values() if not r.success)

    @property
    def duration_ms(self) -> float:
        """Get total duration in milliseconds."""
        return (self.finished_at - self.started_at).total_seconds() * 1000


class CollectionRunner:
    """Pulls every enabled source and ingests new items.

    Provides:
    - Parallel source pulls with bounded concurrency
    - A per-source deadline checked while iterating the lazy item stream
    - An overall wait bound for the whole cycle
    - Failure isolation (one source failing doesn't stop others)
    - Watermarks that advance only on success
    """

    def __init__(  # noqa: PLR0913
        self,
        store: StateStore,
        deduplicator: "Deduplicator",
        collectors: Mapping[SourceMethod, SourceCollector],
        max_workers: int = 4,
        default_timeout: float = DEFAULT_SOURCE_TIMEOUT_SECONDS,
        initial_lookback_hours: int = 24,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the collection runner.

        Args:
            store: State store for watermarks.
            deduplicator: Ingests raw items as events.
            collectors: Collector per source method.
            max_workers: Maximum concurrent sources.
            default_timeout: Deadline for sources without their own.
            initial_lookback_hours: Window for sources never collected.
            monotonic: Monotonic time source for deadlines.
        """
        self._store = store
        self._deduplicator = deduplicator
        self._collectors = dict(collectors)
        self._max_workers = max_workers
        self._default_timeout = default_timeout
        self._initial_lookback = timedelta(hours=initial_lookback_hours)
        self._monotonic = monotonic
        self._metrics = CollectorMetrics.get_instance()
        self._log = logger.bind(component="collector")

    def run_cycle(
        self,
        sources: list[SourceConfig],
        now: datetime | None = None,
    ) -> CollectionCycleResult:
        """Collect all enabled sources once.

        Args:
            sources: Source configurations.
            now: Cycle start; becomes the new watermark of successful sources.

        Returns:
            CollectionCycleResult with per-source results.

        Raises:
            StoreUnavailableError: If the store fails during the cycle.
        """
        now = now or datetime.now(UTC)
        cycle_id = uuid.uuid4().hex[:12]
        started_at = datetime.now(UTC)
        log = self._log.bind(cycle_id=cycle_id)

        active = [s for s in sources if s.enabled]
        log.info(
            "collection_started",
            source_count=len(sources),
            active_count=len(active),
            max_workers=self._max_workers,
        )

        source_results: dict[str, SourceRunResult] = {}
        abort = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix="collector",
        )
        try:
            futures: dict[Future[SourceRunResult], SourceConfig] = {
                executor.submit(
                    self._run_single_source, source, now, abort, log
                ): source
                for source in active
            }
            try:
                overall_timeout = self._overall_timeout(active)
                for future in as_completed(futures, timeout=overall_timeout):
                    source = futures[future]
                    try:
                        source_results[source.id] = future.result()
                    except StoreUnavailableError:
                        abort.set()
                        raise
                    except Exception as e:  # noqa: BLE001
                        log.error(
                            "source_execution_error",
                            source_id=source.id,
                            error=str(e),
                        )
                        source_results[source.id] = self._failed_result(
                            source,
                            ErrorRecord(
                                error_class=CollectorErrorClass.UNREACHABLE,
                                message=f"Execution error: {e}",
                                source_id=source.id,
                            ),
                        )
            except TimeoutError:
                abort.set()
                for source in futures.values():
                    if source.id in source_results:
                        continue
                    timeout = self._timeout_for(source)
                    log.warning("source_abandoned", source_id=source.id)
                    source_results[source.id] = self._failed_result(
                        source,
                        ErrorRecord.from_exception(
                            CollectionTimeoutError(source.id, timeout)
                        ),
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        result = CollectionCycleResult(
            cycle_id=cycle_id,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            source_results=source_results,
        )
        log.info(
            "collection_complete",
            duration_ms=round(result.duration_ms, 2),
            total_new=result.total_new,
            total_duplicates=result.total_duplicates,
            sources_succeeded=result.sources_succeeded,
            sources_failed=result.sources_failed,
        )
        return result

    def _timeout_for(self, source: SourceConfig) -> float:
        return source.timeout_seconds or self._default_timeout

    def _overall_timeout(self, sources: list[SourceConfig]) -> float:
        """Upper bound on how long a cycle waits for its sources."""
        if not sources:
            return OVERALL_GRACE_SECONDS
        waves = math.ceil(len(sources) / self._max_workers)
        longest = max(self._timeout_for(s) for s in sources)
        return waves * longest + OVERALL_GRACE_SECONDS

    def _failed_result(
        self, source: SourceConfig, error: ErrorRecord
    ) -> SourceRunResult:
        self._metrics.record_failure(source.id, error.error_class)
        return SourceRunResult(
            source_id=source.id,
            method=source.method.value,
            error=error,
        )

    def _pull_source(
        self,
        collector: SourceCollector,
        source: SourceConfig,
        since: datetime,
        abort: threading.Event,
    ) -> list[RawItem]:
        """Drain a collector, enforcing the source deadline between items.

        Raises:
            CollectionTimeoutError: If the deadline passes or the cycle aborts.
            CollectionError: If the collector fails.
        """
        timeout = self._timeout_for(source)
        deadline = self._monotonic() + timeout

        def check_deadline() -> None:
            if abort.is_set() or self._monotonic() > deadline:
                raise CollectionTimeoutError(source.id, timeout)

        items: list[RawItem] = []
        for item in collector.pull(source, since):
            check_deadline()
            items.append(item)
        check_deadline()
        return items

    def _run_single_source(
        self,
        source: SourceConfig,
        now: datetime,
        abort: threading.Event,
        log: structlog.stdlib.BoundLogger,
    ) -> SourceRunResult:
        """Collect and ingest a single source.

        Items are ingested only after the whole pull succeeded, so a failed
        or timed-out source contributes nothing and keeps its watermark. A
        cycle abort stops ingestion and also keeps the watermark.
        """
        start_time_ns = time.perf_counter_ns()
        log = log.bind(source_id=source.id, method=source.method.value)

        collector = self._collectors.get(source.method)
        if collector is None:
            log.warning("unsupported_method")
            error = ErrorRecord(
                error_class=CollectorErrorClass.MALFORMED,
                message=f"Unsupported method: {source.method.value}",
                source_id=source.id,
            )
            self._store.record_source_failure(source.id, error.summary(), now)
            return self._failed_result(source, error)

        watermark = self._store.get_watermark(source.id)
        since = (
            watermark.since
            if watermark is not None and watermark.since is not None
            else now - self._initial_lookback
        )
        log.info("source_started", since=since.isoformat())

        try:
            items = self._pull_source(collector, source, since, abort)
        except CollectionError as e:
            return self._source_failed(source, e, now, start_time_ns, log)

        items_new = 0
        items_duplicate = 0
        for item in items:
            if abort.is_set():
                break
            outcome = self._deduplicator.ingest(source, item, now)
            if outcome == IngestOutcome.NEW:
                items_new += 1
            else:
                items_duplicate += 1

        # The cycle may have given up on this source while it was ingesting
        if abort.is_set():
            log.warning(
                "source_ingest_aborted",
                items_ingested=items_new + items_duplicate,
                items_seen=len(items),
            )
            return self._source_failed(
                source,
                CollectionTimeoutError(source.id, self._timeout_for(source)),
                now,
                start_time_ns,
                log,
            )

        self._store.record_source_success(source.id, since=now, now=now)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_duration(source.id, duration_ms)
        self._metrics.record_ingest(source.id, items_new, items_duplicate)

        log.info(
            "source_complete",
            items_seen=len(items),
            items_new=items_new,
            items_duplicate=items_duplicate,
            duration_ms=round(duration_ms, 2),
        )

        return SourceRunResult(
            source_id=source.id,
            method=source.method.value,
            items_seen=len(items),
            items_new=items_new,
            items_duplicate=items_duplicate,
            duration_ms=duration_ms,
        )

    def _source_failed(
        self,
        source: SourceConfig,
        error: CollectionError,
        now: datetime,
        start_time_ns: int,
        log: structlog.stdlib.BoundLogger,
    ) -> SourceRunResult:
        """Record a failed source, leaving its watermark unchanged."""
        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        record = ErrorRecord.from_exception(error)
        self._metrics.record_duration(source.id, duration_ms)
        self._store.record_source_failure(source.id, record.summary(), now)
        log.warning(
            "source_failed",
            error_class=error.error_class.value,
            error=error.message,
            duration_ms=round(duration_ms, 2),
        )
        result = self._failed_result(source, record)
        result.duration_ms = duration_ms
        return result
