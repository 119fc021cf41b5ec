"""Error types for the feedback boundary."""


class FeedbackError(Exception):
    """Base exception for feedback errors."""


class InvalidRatingError(FeedbackError):
    """Raised when a rating is not one of 1, 3 or 5."""

    def __init__(self, rating: object) -> None:
        """Initialize the error.

        Args:
            rating: The rejected rating.
        """
        self.rating = rating
        super().__init__(f"Invalid rating {rating!r}; expected 1, 3 or 5")


class UserEventNotFoundError(FeedbackError):
    """Raised when rating an event that was never delivered to the subscriber."""

    def __init__(self, subscriber_id: str, event_id: str) -> None:
        """Initialize the error.

        Args:
            subscriber_id: Subscriber who rated.
            event_id: Rated event.
        """
        self.subscriber_id = subscriber_id
        self.event_id = event_id
        super().__init__(
            f"Event {event_id} was not delivered to subscriber {subscriber_id}"
        )
