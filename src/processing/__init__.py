"""Event classification, scoring and processing."""

from src.processing.classifier import Classification, EventClassifier, TopicMatcher
from src.processing.processor import (
    EventProcessor,
    ProcessingCycleResult,
    ProcessingError,
)
from src.processing.scorer import (
    ImportanceScorer,
    ScoreBreakdown,
    ScoringFeatures,
    effective_score,
    effective_weight,
)


__all__ = [
    "Classification",
    "EventClassifier",
    "EventProcessor",
    "ImportanceScorer",
    "ProcessingCycleResult",
    "ProcessingError",
    "ScoreBreakdown",
    "ScoringFeatures",
    "TopicMatcher",
    "effective_score",
    "effective_weight",
]
