"""Feedback recalibration of per-category weights."""

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from src.config.schemas.pipeline import RecalibrationConfig
from src.feedback.errors import InvalidRatingError, UserEventNotFoundError
from src.scheduler.clock import Clock
from src.store.models import VALID_RATINGS, Topic
from src.store.store import StateStore


logger = structlog.get_logger()

NEUTRAL_RATING = 3


@dataclass(frozen=True)
class RecalibrationResult:
    """Outcome of applying one rating.

    Attributes:
        subscriber_id: Subscriber who rated.
        event_id: Rated event.
        rating: New rating.
        previous_rating: Rating before this call, if any.
        applied_delta: Weight change applied to each category.
        weights: New weight per category of the event.
    """

    subscriber_id: str
    event_id: str
    rating: int
    previous_rating: int | None
    applied_delta: float
    weights: dict[Topic, float] = field(default_factory=dict)


class FeedbackRecalibrator:
    """Adjusts a subscriber's category weights from ratings.

    A rating of 5 raises, 1 lowers and 3 leaves the weights of the rated
    event's categories unchanged. Re-rating applies only the difference to
    the previous rating, so rating 5 then 1 ends where rating 1 alone would.
    """

    def __init__(
        self,
        store: StateStore,
        config: RecalibrationConfig | None = None,
    ) -> None:
        """Initialize the recalibrator.

        Args:
            store: State store.
            config: Step and bounds.
        """
        self._store = store
        self._config = config or RecalibrationConfig()
        self._log = logger.bind(component="feedback")

    def rating_delta(self, rating: int) -> float:
        """Weight change for a rating relative to neutral."""
        if rating not in VALID_RATINGS:
            raise InvalidRatingError(rating)
        return (rating - NEUTRAL_RATING) / 2 * self._config.step

    def apply_rating(
        self,
        subscriber_id: str,
        event_id: str,
        rating: int,
        now: datetime,
    ) -> RecalibrationResult:
        """Store a rating and recalibrate the event's category weights.

        Args:
            subscriber_id: Subscriber who rated.
            event_id: Rated event.
            rating: 1, 3 or 5.
            now: Rating timestamp.

        Returns:
            RecalibrationResult.

        Raises:
            InvalidRatingError: If the rating is not 1, 3 or 5.
            UserEventNotFoundError: If the event was not delivered.
            EventNotFoundError: If the event no longer exists.
        """
        if rating not in VALID_RATINGS:
            raise InvalidRatingError(rating)
        deltas = {r: self.rating_delta(r) for r in VALID_RATINGS}

        update = self._store.record_rating(
            subscriber_id,
            event_id,
            rating,
            now,
            deltas=deltas,
            floor=self._config.floor,
            ceiling=self._config.ceiling,
        )
        if update is None:
            raise UserEventNotFoundError(subscriber_id, event_id)

        self._log.info(
            "rating_applied",
            subscriber_id=subscriber_id,
            event_id=event_id,
            rating=rating,
            previous_rating=update.previous_rating,
            applied_delta=update.applied_delta,
            weights={c.value: w for c, w in update.weights.items()},
        )
        return RecalibrationResult(
            subscriber_id=subscriber_id,
            event_id=event_id,
            rating=rating,
            previous_rating=update.previous_rating,
            applied_delta=update.applied_delta,
            weights=dict(update.weights),
        )


class FeedbackService:
    """Boundary called by the external feedback collaborator."""

    def __init__(self, recalibrator: FeedbackRecalibrator, clock: Clock) -> None:
        """Initialize the service.

        Args:
            recalibrator: Recalibrator applying ratings.
            clock: Time source for ``rated_at``.
        """
        self._recalibrator = recalibrator
        self._clock = clock

    def submit(
        self, subscriber_id: str, event_id: str, rating: int
    ) -> RecalibrationResult:
        """Validate and apply a rating.

        Raises:
            InvalidRatingError: If the rating is not 1, 3 or 5.
            UserEventNotFoundError: If the event was not delivered to the
                subscriber.
        """
        if isinstance(rating, bool) or rating not in VALID_RATINGS:
            raise InvalidRatingError(rating)
        return self._recalibrator.apply_rating(
            subscriber_id, event_id, rating, self._clock.now()
        )
