"""Delivery channel interface and result types."""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from src.composer.models import DigestPayload
from src.store.models import Subscriber


class FailureKind(str, Enum):
    """Classification of delivery failures.

    - TRANSIENT: Worth retrying with the same payload
    - PERMANENT: Retrying cannot succeed (bad address, rejected content)
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"


class DeliveryError(Exception):
    """Raised inside channels; converted to a DeliveryResult at the boundary."""

    def __init__(self, kind: FailureKind, reason: str) -> None:
        """Initialize the error.

        Args:
            kind: Whether the failure is transient or permanent.
            reason: Human-readable reason.
        """
        self.kind = kind
        self.reason = reason
        super().__init__(f"{kind.value} delivery failure: {reason}")


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt."""

    success: bool
    failure_kind: FailureKind | None = None
    reason: str | None = None

    @classmethod
    def delivered(cls) -> "DeliveryResult":
        """Successful delivery."""
        return cls(success=True)

    @classmethod
    def from_error(cls, error: DeliveryError) -> "DeliveryResult":
        """Failed delivery described by a DeliveryError."""
        return cls(success=False, failure_kind=error.kind, reason=error.reason)

    @property
    def is_transient(self) -> bool:
        """Check if a failed delivery may be retried."""
        return not self.success and self.failure_kind == FailureKind.TRANSIENT


@runtime_checkable
class DeliveryChannel(Protocol):
    """Sends a rendered digest to a subscriber.

    Implementations never raise for delivery failures; they report them
    in the returned DeliveryResult.
    """

    def send(self, subscriber: Subscriber, payload: DigestPayload) -> DeliveryResult:
        """Send the payload.

        Args:
            subscriber: Recipient.
            payload: Rendered digest.

        Returns:
            DeliveryResult describing the outcome.
        """
        ...
