"""Configuration schema definitions."""

from src.config.schemas.base import SourceMethod
from src.config.schemas.pipeline import (
    CollectionConfig,
    DigestConfig,
    PipelineConfig,
    ProcessingConfig,
    RecalibrationConfig,
    RetryPolicy,
    ScheduleConfig,
)
from src.config.schemas.sources import SourceConfig
from src.config.schemas.subscribers import SubscribersFile
from src.config.schemas.topics import ScoringConfig, TopicLexicon


__all__ = [
    "CollectionConfig",
    "DigestConfig",
    "PipelineConfig",
    "ProcessingConfig",
    "RecalibrationConfig",
    "RetryPolicy",
    "ScheduleConfig",
    "ScoringConfig",
    "SourceConfig",
    "SourceMethod",
    "SubscribersFile",
    "TopicLexicon",
]
