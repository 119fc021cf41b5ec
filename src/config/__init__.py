"""Configuration loading and validation module."""

from src.config.loader import ConfigLoader, ConfigValidationError
from src.config.schemas import (
    CollectionConfig,
    DigestConfig,
    PipelineConfig,
    ProcessingConfig,
    RecalibrationConfig,
    RetryPolicy,
    ScheduleConfig,
    ScoringConfig,
    SourceConfig,
    SourceMethod,
    TopicLexicon,
)


__all__ = [
    "CollectionConfig",
    "ConfigLoader",
    "ConfigValidationError",
    "DigestConfig",
    "PipelineConfig",
    "ProcessingConfig",
    "RecalibrationConfig",
    "RetryPolicy",
    "ScheduleConfig",
    "ScoringConfig",
    "SourceConfig",
    "SourceMethod",
    "TopicLexicon",
]
