"""Console delivery: logs digests instead of sending them."""

import structlog

from src.composer.models import DigestPayload
from src.delivery.base import DeliveryResult
from src.store.models import Subscriber


logger = structlog.get_logger()


class ConsoleDelivery:
    """Writes digests to the log. Used when SMTP is not configured."""

    def __init__(self, include_body: bool = True) -> None:
        """Initialize the channel.

        Args:
            include_body: Whether to log the text body.
        """
        self._include_body = include_body
        self._log = logger.bind(component="delivery", channel="console")

    def send(self, subscriber: Subscriber, payload: DigestPayload) -> DeliveryResult:
        """Log the digest and report success."""
        self._log.info(
            "digest_printed",
            subscriber_id=subscriber.id,
            email=subscriber.email,
            subject=payload.subject,
            event_ids=payload.event_ids,
            body=payload.text_body if self._include_body else None,
        )
        return DeliveryResult.delivered()
