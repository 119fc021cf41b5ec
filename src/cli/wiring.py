"""Assembles pipeline components from configuration and settings."""

import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from src.collectors import (
    CollectionCycleResult,
    CollectionRunner,
    JsonFeedCollector,
    RssAtomCollector,
)
from src.composer import DigestComposer
from src.config.constants import COMPONENT_CLI
from src.config.schemas import PipelineConfig, SourceMethod
from src.dedup import Deduplicator
from src.delivery import ConsoleDelivery, DeliveryChannel, SmtpEmailDelivery
from src.feedback import FeedbackRecalibrator, FeedbackService
from src.fetch import HttpFetcher
from src.observability.logging import bind_cycle_context, clear_cycle_context
from src.processing import (
    EventClassifier,
    EventProcessor,
    ImportanceScorer,
    ProcessingCycleResult,
)
from src.scheduler import (
    CandidateSelector,
    Clock,
    DigestScheduler,
    DispatchResult,
    PeriodicTask,
    PipelineScheduler,
    SystemClock,
)
from src.settings import AppSettings
from src.store import StateStore


logger = structlog.get_logger()


def build_channel(settings: AppSettings) -> DeliveryChannel:
    """Pick the delivery channel.

    SMTP is used when fully configured, otherwise digests are logged to
    the console.

    Args:
        settings: Environment settings.

    Returns:
        Delivery channel.
    """
    if settings.smtp_configured:
        return SmtpEmailDelivery(
            host=settings.smtp_host or "",
            port=settings.smtp_port,
            from_email=settings.smtp_from_email or settings.smtp_user or "",
            username=settings.smtp_user,
            password=settings.smtp_password,
            from_name=settings.smtp_from_name,
        )
    logger.warning(
        "smtp_not_configured", component=COMPONENT_CLI, channel="console"
    )
    return ConsoleDelivery()


@dataclass
class Pipeline:
    """Wired pipeline components sharing one store and clock."""

    config: PipelineConfig
    store: StateStore
    clock: Clock
    runner: CollectionRunner
    processor: EventProcessor
    digest_scheduler: DigestScheduler
    feedback: FeedbackService

    def collect(self, now: datetime | None = None) -> CollectionCycleResult:
        """Run one collection cycle over the enabled sources."""
        now = now or self.clock.now()
        return self.runner.run_cycle(self.config.enabled_sources, now)

    def process(
        self, now: datetime | None = None  # noqa: ARG002
    ) -> ProcessingCycleResult:
        """Run one processing cycle (``now`` is accepted for the task signature)."""
        return self.processor.run_cycle()

    def tick(self, now: datetime | None = None) -> list[Future[DispatchResult]]:
        """Evaluate due digest slots and start dispatches."""
        return self.digest_scheduler.tick(now)

    def tasks(self) -> list[PeriodicTask]:
        """Build the periodic tasks for the long-running scheduler."""
        schedule = self.config.schedule
        return [
            PeriodicTask(
                name="collection",
                period=timedelta(minutes=schedule.collection_period_minutes),
                action=_in_cycle("collection", self.collect),
            ),
            PeriodicTask(
                name="processing",
                period=timedelta(minutes=schedule.processing_period_minutes),
                action=_in_cycle("processing", self.process),
            ),
            PeriodicTask(
                name="digest_tick",
                period=timedelta(seconds=schedule.tick_seconds),
                action=self.tick,
            ),
        ]

    def scheduler(self) -> PipelineScheduler:
        """Build the periodic scheduler."""
        return PipelineScheduler(self.tasks(), self.clock)

    def shutdown(self, wait: bool = True) -> None:
        """Stop dispatch workers."""
        self.digest_scheduler.shutdown(wait=wait)


def _in_cycle(
    cycle: str, action: Callable[[datetime], object]
) -> Callable[[datetime], object]:
    """Wrap a periodic action so its logs carry the cycle context."""

    def run(now: datetime) -> object:
        bind_cycle_context(cycle, uuid.uuid4().hex[:12])
        try:
            return action(now)
        finally:
            clear_cycle_context()

    return run


def build_pipeline(
    config: PipelineConfig,
    store: StateStore,
    settings: AppSettings,
    clock: Clock | None = None,
    channel: DeliveryChannel | None = None,
) -> Pipeline:
    """Wire every component of the pipeline.

    Args:
        config: Validated pipeline configuration.
        store: Connected state store.
        settings: Environment settings.
        clock: Time source (defaults to the system clock).
        channel: Delivery channel (defaults to :func:`build_channel`).

    Returns:
        Wired pipeline.
    """
    clock = clock or SystemClock()

    fetcher = HttpFetcher()
    runner = CollectionRunner(
        store=store,
        deduplicator=Deduplicator(store, config.collection.strip_params),
        collectors={
            SourceMethod.RSS_ATOM: RssAtomCollector(fetcher),
            SourceMethod.JSON_FEED: JsonFeedCollector(fetcher),
        },
        max_workers=config.collection.max_workers,
        default_timeout=config.collection.source_timeout_seconds,
        initial_lookback_hours=config.collection.initial_lookback_hours,
    )

    processor = EventProcessor(
        store=store,
        classifier=EventClassifier(config.topics),
        scorer=ImportanceScorer(config.scoring, config.topics),
        clock=clock,
        retry=config.processing.retry,
        batch_size=config.processing.batch_size,
        max_batches=config.processing.max_batches,
    )

    digest = config.digest
    digest_scheduler = DigestScheduler(
        store=store,
        selector=CandidateSelector(
            store,
            max_items=digest.max_items,
            window_hours=digest.selection_window_hours,
            max_score=config.scoring.max_score,
        ),
        composer=DigestComposer(
            summary_chars=digest.summary_chars,
            feedback_base_url=settings.feedback_base_url,
        ),
        channel=channel or build_channel(settings),
        clock=clock,
        executor=ThreadPoolExecutor(
            max_workers=digest.dispatch_workers, thread_name_prefix="dispatch"
        ),
        tolerance=timedelta(minutes=config.schedule.slot_tolerance_minutes),
        delivery_retry=digest.delivery_retry,
    )

    feedback = FeedbackService(
        FeedbackRecalibrator(store, config.recalibration), clock
    )

    return Pipeline(
        config=config,
        store=store,
        clock=clock,
        runner=runner,
        processor=processor,
        digest_scheduler=digest_scheduler,
        feedback=feedback,
    )
