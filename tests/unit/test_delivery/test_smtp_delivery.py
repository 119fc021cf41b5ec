"""Unit tests for SMTP delivery."""

import smtplib
from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest

from src.composer.models import DigestPayload
from src.delivery.base import FailureKind
from src.delivery.smtp import SmtpEmailDelivery
from tests.helpers.builders import make_subscriber


@pytest.fixture
def payload() -> DigestPayload:
    """Create a rendered digest."""
    return DigestPayload(
        subject="Your intelligence digest",
        text_body="1. Story\n",
        html_body="<ol><li>Story</li></ol>",
        event_ids=["e1"],
    )


@pytest.fixture
def delivery() -> SmtpEmailDelivery:
    """Create an SMTP channel with credentials."""
    return SmtpEmailDelivery(
        host="smtp.example.com",
        port=587,
        from_email="digest@example.com",
        username="digest",
        password="secret",
    )


@pytest.fixture
def server() -> Generator[MagicMock]:
    """Patch smtplib.SMTP and yield the connected server mock."""
    with patch("src.delivery.smtp.smtplib.SMTP") as smtp_class:
        server = MagicMock()
        server.send_message.return_value = {}
        smtp_class.return_value.__enter__.return_value = server
        yield server


class TestSmtpEmailDelivery:
    """Tests for SmtpEmailDelivery."""

    def test_build_message(
        self, delivery: SmtpEmailDelivery, payload: DigestPayload
    ) -> None:
        """Messages are multipart with text and HTML parts."""
        msg = delivery.build_message(make_subscriber(), payload)

        assert msg["To"] == "sub-1@example.com"
        assert msg["Subject"] == "Your intelligence digest"
        assert msg["From"] == "Intelligence Digest <digest@example.com>"
        parts = msg.get_payload()
        assert [p.get_content_type() for p in parts] == ["text/plain", "text/html"]

    def test_send_success(
        self,
        delivery: SmtpEmailDelivery,
        payload: DigestPayload,
        server: MagicMock,
    ) -> None:
        """A successful send uses STARTTLS and login."""
        result = delivery.send(make_subscriber(), payload)

        assert result.success
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("digest", "secret")
        server.send_message.assert_called_once()

    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (smtplib.SMTPResponseException(421, b"Service busy"), FailureKind.TRANSIENT),
            (smtplib.SMTPDataError(554, b"Message rejected"), FailureKind.PERMANENT),
            (smtplib.SMTPAuthenticationError(535, b"Bad credentials"), FailureKind.PERMANENT),
            (
                smtplib.SMTPRecipientsRefused({"sub-1@example.com": (550, b"No such user")}),
                FailureKind.PERMANENT,
            ),
            (smtplib.SMTPServerDisconnected("gone"), FailureKind.TRANSIENT),
        ],
    )
    def test_failure_classification(
        self,
        delivery: SmtpEmailDelivery,
        payload: DigestPayload,
        server: MagicMock,
        error: Exception,
        kind: FailureKind,
    ) -> None:
        """SMTP errors are classified as transient or permanent."""
        server.send_message.side_effect = error

        result = delivery.send(make_subscriber(), payload)

        assert not result.success
        assert result.failure_kind == kind

    def test_refused_recipient_in_result(
        self,
        delivery: SmtpEmailDelivery,
        payload: DigestPayload,
        server: MagicMock,
    ) -> None:
        """Recipients refused without an exception are a permanent failure."""
        server.send_message.return_value = {"sub-1@example.com": (550, b"No")}

        result = delivery.send(make_subscriber(), payload)

        assert result.failure_kind == FailureKind.PERMANENT
        assert not result.is_transient

    def test_connection_refused_is_transient(
        self, delivery: SmtpEmailDelivery, payload: DigestPayload
    ) -> None:
        """Network errors while connecting are transient."""
        with patch(
            "src.delivery.smtp.smtplib.SMTP",
            side_effect=ConnectionRefusedError("refused"),
        ):
            result = delivery.send(make_subscriber(), payload)

        assert result.is_transient
        assert result.reason is not None
        assert result.reason.startswith("Connection failed")

    def test_no_login_without_credentials(
        self, payload: DigestPayload, server: MagicMock
    ) -> None:
        """Login is skipped when no credentials are configured."""
        delivery = SmtpEmailDelivery(
            host="localhost", port=25, from_email="digest@example.com", use_starttls=False
        )

        assert delivery.send(make_subscriber(), payload).success
        server.starttls.assert_not_called()
        server.login.assert_not_called()
