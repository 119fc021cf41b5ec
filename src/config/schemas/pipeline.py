"""Pipeline configuration schema (root of pipeline.yaml)."""

from typing import Annotated

from pydantic import Field, model_validator

from src.config.constants import DEFAULT_TOPIC_LEXICON
from src.config.schemas.sources import SourceConfig
from src.config.schemas.topics import ScoringConfig, TopicLexicon
from src.data_model import StrictBaseModel


class RetryPolicy(StrictBaseModel):
    """Configuration for retry behavior.

    Uses exponential backoff:
    delay = base_delay_ms * (exponential_base ^ attempt), capped at max_delay_ms.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay_ms: Delay before the first retry.
        max_delay_ms: Upper bound on any single delay.
        exponential_base: Growth factor between attempts.
    """

    max_attempts: Annotated[int, Field(ge=1, le=10)] = 3
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 500
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 30000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 2.0

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the next attempt.

        Args:
            attempt: Attempt that just failed (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        return int(min(delay, self.max_delay_ms))


class ScheduleConfig(StrictBaseModel):
    """Periods of the three independent pipeline activities.

    Attributes:
        collection_period_minutes: How often sources are pulled.
        processing_period_minutes: How often collected events are processed.
        tick_seconds: Digest scheduler tick granularity.
        slot_tolerance_minutes: Window after a slot time in which it is due.
    """

    collection_period_minutes: Annotated[int, Field(ge=1, le=24 * 60)] = 120
    processing_period_minutes: Annotated[int, Field(ge=1, le=24 * 60)] = 30
    tick_seconds: Annotated[int, Field(ge=1, le=3600)] = 60
    slot_tolerance_minutes: Annotated[int, Field(ge=1, le=60)] = 5


class CollectionConfig(StrictBaseModel):
    """Collector orchestration settings.

    Attributes:
        max_workers: Sources pulled concurrently.
        source_timeout_seconds: Default per-source timeout.
        initial_lookback_hours: Watermark for a source never collected before.
        strip_params: Extra tracking parameters stripped from URLs.
    """

    max_workers: Annotated[int, Field(ge=1, le=64)] = 4
    source_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = 30.0
    initial_lookback_hours: Annotated[int, Field(ge=1, le=24 * 30)] = 24
    strip_params: list[str] = Field(default_factory=list)


class ProcessingConfig(StrictBaseModel):
    """Event processor settings.

    Attributes:
        batch_size: Events claimed per batch.
        max_batches: Batches per processing cycle.
        retry: Retry policy for classification and scoring.
    """

    batch_size: Annotated[int, Field(ge=1, le=1000)] = 50
    max_batches: Annotated[int, Field(ge=1, le=1000)] = 20
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class DigestConfig(StrictBaseModel):
    """Digest selection, composition and delivery settings.

    Attributes:
        max_items: Maximum events in one digest.
        selection_window_hours: Only events collected this recently qualify.
        summary_chars: Body characters shown by detailed/technical tones.
        dispatch_workers: Concurrent slot dispatches.
        delivery_retry: Retry policy for transient delivery failures.
    """

    max_items: Annotated[int, Field(ge=1, le=100)] = 10
    selection_window_hours: Annotated[int, Field(ge=1, le=24 * 14)] = 24
    summary_chars: Annotated[int, Field(ge=40, le=5000)] = 280
    dispatch_workers: Annotated[int, Field(ge=1, le=64)] = 4
    delivery_retry: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(base_delay_ms=2000)
    )


class RecalibrationConfig(StrictBaseModel):
    """Feedback recalibration bounds.

    Attributes:
        step: Weight change for a 1 or 5 rating.
        floor: Lowest allowed weight.
        ceiling: Highest allowed weight.
    """

    step: Annotated[float, Field(gt=0.0, le=1.0)] = 0.1
    floor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.2
    ceiling: Annotated[float, Field(ge=1.0, le=10.0)] = 2.0


def _default_topics() -> list[TopicLexicon]:
    return [
        TopicLexicon(topic=topic, keywords=keywords, salience=salience)
        for topic, (keywords, salience) in DEFAULT_TOPIC_LEXICON.items()
    ]


class PipelineConfig(StrictBaseModel):
    """Root configuration for pipeline.yaml.

    Attributes:
        version: Schema version.
        sources: Source configurations.
        topics: Topic lexicons (defaults cover every topic).
        scoring: Importance scoring weights.
        schedule: Activity periods.
        collection: Collector settings.
        processing: Processor settings.
        digest: Digest settings.
        recalibration: Feedback bounds.
    """

    version: Annotated[str, Field(pattern=r"^\d+\.\d+$")] = "1.0"
    sources: list[SourceConfig] = Field(default_factory=list)
    topics: list[TopicLexicon] = Field(default_factory=_default_topics)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    digest: DigestConfig = Field(default_factory=DigestConfig)
    recalibration: RecalibrationConfig = Field(default_factory=RecalibrationConfig)

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "PipelineConfig":
        """Ensure source IDs and topic lexicons are unique."""
        ids = [s.id for s in self.sources]
        duplicates = {id_ for id_ in ids if ids.count(id_) > 1}
        if duplicates:
            msg = f"Duplicate source IDs found: {sorted(duplicates)}"
            raise ValueError(msg)

        topics = [t.topic for t in self.topics]
        duplicate_topics = {t.value for t in topics if topics.count(t) > 1}
        if duplicate_topics:
            msg = f"Duplicate topic lexicons found: {sorted(duplicate_topics)}"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_recalibration_bounds(self) -> "PipelineConfig":
        """Ensure the recalibration floor is below the ceiling."""
        if self.recalibration.floor >= self.recalibration.ceiling:
            msg = "recalibration.floor must be lower than recalibration.ceiling"
            raise ValueError(msg)
        return self

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        """Get sources that are enabled."""
        return [s for s in self.sources if s.enabled]
