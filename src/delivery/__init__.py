"""Digest delivery channels."""

from src.delivery.base import (
    DeliveryChannel,
    DeliveryError,
    DeliveryResult,
    FailureKind,
)
from src.delivery.console import ConsoleDelivery
from src.delivery.smtp import SmtpEmailDelivery


__all__ = [
    "ConsoleDelivery",
    "DeliveryChannel",
    "DeliveryError",
    "DeliveryResult",
    "FailureKind",
    "SmtpEmailDelivery",
]
