"""Domain exceptions for the state store.

This module defines a hierarchy of exceptions for the state store layer,
separating infrastructure errors (database issues) from domain errors
(business rule violations).
"""


class StateStoreError(Exception):
    """Base exception for all state store errors.

    All exceptions raised by the state store should inherit from this class
    to enable consistent error handling at the application level.
    """


class ConnectionError(StateStoreError):
    """Raised when database connection is not established."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class StoreUnavailableError(StateStoreError):
    """Raised when the database cannot be read or written at all.

    This is the only error that is fatal to a pipeline cycle and is
    surfaced for operational alerting.
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize the error.

        Args:
            operation: The store operation that failed.
            message: Underlying error message.
        """
        self.operation = operation
        super().__init__(f"Store unavailable during {operation}: {message}")


class DuplicateFingerprintError(StateStoreError):
    """Raised when inserting an Event whose fingerprint already exists.

    Expected during collection; callers treat it as a successful no-op.
    """

    def __init__(self, fingerprint: str) -> None:
        """Initialize the error with the colliding fingerprint.

        Args:
            fingerprint: The fingerprint that already exists.
        """
        self.fingerprint = fingerprint
        super().__init__(f"Duplicate fingerprint: {fingerprint}")


class EventNotFoundError(StateStoreError):
    """Raised when a requested event is not found."""

    def __init__(self, event_id: str) -> None:
        """Initialize the error with the missing event ID.

        Args:
            event_id: The event ID that was not found.
        """
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


class SubscriberNotFoundError(StateStoreError):
    """Raised when a requested subscriber is not found."""

    def __init__(self, subscriber_id: str) -> None:
        """Initialize the error with the missing subscriber ID.

        Args:
            subscriber_id: The subscriber ID that was not found.
        """
        self.subscriber_id = subscriber_id
        super().__init__(f"Subscriber not found: {subscriber_id}")


class EventNotProcessedError(StateStoreError):
    """Raised when a UserEvent would reference an unprocessed event."""

    def __init__(self, event_id: str, status: str) -> None:
        """Initialize the error.

        Args:
            event_id: The referenced event.
            status: The event's current status.
        """
        self.event_id = event_id
        self.status = status
        super().__init__(f"Event {event_id} is {status}, not processed")


class MigrationError(StateStoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")
