"""SMTP email delivery for digests."""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid

import structlog

from src.composer.models import DigestPayload
from src.delivery.base import DeliveryError, DeliveryResult, FailureKind
from src.store.models import Subscriber


logger = structlog.get_logger()

DEFAULT_SMTP_TIMEOUT_SECONDS = 30.0

# SMTP reply codes from this value up are permanent failures
SMTP_PERMANENT_MIN = 500


class SmtpEmailDelivery:
    """Sends digests as multipart (text + HTML) email over SMTP.

    Failure classification:
    - connection problems and 4xx replies are transient
    - 5xx replies, refused recipients and authentication failures are
      permanent
    """

    def __init__(  # noqa: PLR0913
        self,
        host: str,
        port: int,
        from_email: str,
        username: str | None = None,
        password: str | None = None,
        from_name: str = "Intelligence Digest",
        use_starttls: bool = True,
        timeout: float = DEFAULT_SMTP_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize SMTP delivery.

        Args:
            host: SMTP server hostname.
            port: SMTP server port.
            from_email: Sender address.
            username: Login user (optional).
            password: Login password (optional).
            from_name: Sender display name.
            use_starttls: Upgrade the connection with STARTTLS.
            timeout: Socket timeout in seconds.
        """
        self._host = host
        self._port = port
        self._from_email = from_email
        self._username = username
        self._password = password
        self._from_name = from_name
        self._use_starttls = use_starttls
        self._timeout = timeout
        self._log = logger.bind(component="delivery", channel="smtp")

    def build_message(
        self, subscriber: Subscriber, payload: DigestPayload
    ) -> MIMEMultipart:
        """Build the MIME message for a digest."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = payload.subject
        msg["From"] = f"{self._from_name} <{self._from_email}>"
        msg["To"] = subscriber.email
        msg["Date"] = formatdate(localtime=False, usegmt=True)
        msg["Message-ID"] = make_msgid(domain=self._from_email.rsplit("@", 1)[-1])
        msg.attach(MIMEText(payload.text_body, "plain", "utf-8"))
        msg.attach(MIMEText(payload.html_body, "html", "utf-8"))
        return msg

    def send(self, subscriber: Subscriber, payload: DigestPayload) -> DeliveryResult:
        """Send the digest, classifying failures.

        Args:
            subscriber: Recipient.
            payload: Rendered digest.

        Returns:
            DeliveryResult describing the outcome.
        """
        log = self._log.bind(
            subscriber_id=subscriber.id,
            item_count=len(payload.event_ids),
        )
        try:
            self._send(subscriber, payload)
        except DeliveryError as e:
            log.warning(
                "smtp_send_failed",
                failure_kind=e.kind.value,
                reason=e.reason,
            )
            return DeliveryResult.from_error(e)

        log.info("smtp_sent", subject=payload.subject)
        return DeliveryResult.delivered()

    def _send(self, subscriber: Subscriber, payload: DigestPayload) -> None:
        msg = self.build_message(subscriber, payload)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_starttls:
                    server.starttls()
                if self._username and self._password:
                    server.login(self._username, self._password)
                refused = server.send_message(msg)
        except smtplib.SMTPRecipientsRefused as e:
            msg_text = f"Recipient refused: {sorted(e.recipients)}"
            raise DeliveryError(FailureKind.PERMANENT, msg_text) from e
        except smtplib.SMTPAuthenticationError as e:
            msg_text = f"Authentication failed ({e.smtp_code})"
            raise DeliveryError(FailureKind.PERMANENT, msg_text) from e
        except smtplib.SMTPResponseException as e:
            permanent = e.smtp_code >= SMTP_PERMANENT_MIN
            kind = FailureKind.PERMANENT if permanent else FailureKind.TRANSIENT
            raise DeliveryError(kind, f"SMTP {e.smtp_code}: {e.smtp_error!r}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(FailureKind.TRANSIENT, f"Connection failed: {e}") from e

        if refused:
            msg_text = f"Recipient refused: {sorted(refused)}"
            raise DeliveryError(FailureKind.PERMANENT, msg_text)
