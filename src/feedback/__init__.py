"""Subscriber feedback and weight recalibration."""

from src.feedback.errors import (
    FeedbackError,
    InvalidRatingError,
    UserEventNotFoundError,
)
from src.feedback.recalibrator import (
    FeedbackRecalibrator,
    FeedbackService,
    RecalibrationResult,
)


__all__ = [
    "FeedbackError",
    "FeedbackRecalibrator",
    "FeedbackService",
    "InvalidRatingError",
    "RecalibrationResult",
    "UserEventNotFoundError",
]
