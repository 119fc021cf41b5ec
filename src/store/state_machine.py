"""Event status lifecycle rules."""

from typing import ClassVar

import structlog

from src.store.models import EventStatus


logger = structlog.get_logger()


class InvalidTransitionError(Exception):
    """Raised when an illegal event status transition is attempted."""

    def __init__(self, from_status: EventStatus, to_status: EventStatus) -> None:
        """Initialize the error.

        Args:
            from_status: The expected current status.
            to_status: The attempted target status.
        """
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid event status transition: {from_status.value} -> {to_status.value}"
        )


class EventLifecycle:
    """Transition table for Event.status.

    State transitions:
        COLLECTED -> PROCESSING: Claimed by a processor worker
        PROCESSING -> PROCESSED: Classification and scoring succeeded
        PROCESSING -> ERRORED: Retries exhausted

    PROCESSED and ERRORED are terminal. Nothing ever returns to
    COLLECTED or PROCESSING.
    """

    VALID_TRANSITIONS: ClassVar[dict[EventStatus, set[EventStatus]]] = {
        EventStatus.COLLECTED: {EventStatus.PROCESSING},
        EventStatus.PROCESSING: {EventStatus.PROCESSED, EventStatus.ERRORED},
        EventStatus.PROCESSED: set(),  # Terminal state
        EventStatus.ERRORED: set(),  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: EventStatus, to_status: EventStatus) -> bool:
        """Check if a transition is valid.

        Args:
            from_status: The current status.
            to_status: The target status.

        Returns:
            True if the transition is valid, False otherwise.
        """
        return to_status in cls.VALID_TRANSITIONS.get(from_status, set())

    @classmethod
    def ensure_transition(cls, from_status: EventStatus, to_status: EventStatus) -> None:
        """Validate a transition, logging invariant violations.

        Args:
            from_status: The current status.
            to_status: The target status.

        Raises:
            InvalidTransitionError: If the transition is invalid.
        """
        if not cls.can_transition(from_status, to_status):
            logger.error(
                "invariant_violation",
                component="store",
                error_type="illegal_status_transition",
                from_status=from_status.value,
                to_status=to_status.value,
            )
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_terminal(cls, status: EventStatus) -> bool:
        """Check if a status is terminal (no more transitions allowed)."""
        return not cls.VALID_TRANSITIONS.get(status)
