"""Digest composition using Jinja2 templates."""

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING
from urllib.parse import urlencode

import structlog
from jinja2 import Environment, PackageLoader, select_autoescape

from src.composer.models import DigestItem, DigestPayload
from src.store.models import VALID_RATINGS, Subscriber, Tone


if TYPE_CHECKING:
    from src.scheduler.selector import RankedEvent

logger = structlog.get_logger()

DEFAULT_SUMMARY_CHARS = 280

RATING_LABELS: dict[int, str] = {5: "Useful", 3: "Okay", 1: "Not relevant"}


def truncate_summary(text: str, limit: int) -> str:
    """Cut text at a word boundary, appending an ellipsis when shortened."""
    text = text.strip()
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(" ", 1)[0].rstrip(" ,.;:")
    return f"{cut or text[:limit]}..."


class DigestComposer:
    """Renders digests for a subscriber.

    Tone only changes verbosity. Concise digests carry title and link,
    detailed ones add a short summary, and technical ones add tags,
    matched keywords and the effective score. HTML templates are
    auto-escaped since titles and bodies come from external feeds.
    """

    def __init__(
        self,
        summary_chars: int = DEFAULT_SUMMARY_CHARS,
        feedback_base_url: str | None = None,
    ) -> None:
        """Initialize the composer.

        Args:
            summary_chars: Body characters shown by detailed/technical tones.
            feedback_base_url: Base URL for rating links (None disables them).
        """
        self._summary_chars = summary_chars
        self._feedback_base_url = feedback_base_url
        self._log = logger.bind(component="composer")
        self._env = Environment(
            loader=PackageLoader("src.composer", "templates"),
            autoescape=select_autoescape(
                enabled_extensions=("html.j2", "html"),
                default_for_string=False,
            ),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def feedback_links(self, subscriber_id: str, event_id: str) -> dict[int, str]:
        """Build rating links for one item.

        Returns:
            Rating -> URL, empty when no base URL is configured.
        """
        if not self._feedback_base_url:
            return {}
        return {
            rating: (
                f"{self._feedback_base_url}?"
                + urlencode(
                    {"event": event_id, "user": subscriber_id, "rating": rating}
                )
            )
            for rating in sorted(VALID_RATINGS, reverse=True)
        }

    def _to_item(
        self, subscriber: Subscriber, ranked: "RankedEvent"
    ) -> DigestItem:
        event = ranked.event
        summary = ""
        if subscriber.tone != Tone.CONCISE and event.body:
            summary = truncate_summary(event.body, self._summary_chars)
        return DigestItem(
            event_id=event.id,
            title=event.title,
            url=event.url,
            summary=summary,
            tags=[t.value for t in event.category_tags],
            matched_keywords=[
                k for k in event.matched_keywords if k in subscriber.keyword_set
            ],
            score=ranked.effective_score,
            feedback_links=self.feedback_links(subscriber.id, event.id),
        )

    def compose(
        self,
        subscriber: Subscriber,
        ranked: Sequence["RankedEvent"],
        now: datetime,
    ) -> DigestPayload:
        """Render a digest for already-selected events.

        Args:
            subscriber: Recipient profile.
            ranked: Selected events in display order.
            now: Dispatch time (rendered in the subscriber's timezone).

        Returns:
            DigestPayload with subject, text and HTML bodies.
        """
        local_now = now.astimezone(subscriber.zone)
        items = [self._to_item(subscriber, r) for r in ranked]
        noun = "update" if len(items) == 1 else "updates"
        subject = (
            f"Your intelligence digest for {local_now:%a %d %b %Y}: "
            f"{len(items)} {noun}"
        )

        context = {
            "subject": subject,
            "subscriber": subscriber,
            "tone": subscriber.tone.value,
            "items": items,
            "local_time": f"{local_now:%Y-%m-%d %H:%M} ({subscriber.timezone})",
            "rating_labels": RATING_LABELS,
        }
        text_body = self._env.get_template("digest.txt.j2").render(context)
        html_body = self._env.get_template("digest.html.j2").render(context)

        self._log.debug(
            "digest_composed",
            subscriber_id=subscriber.id,
            item_count=len(items),
            tone=subscriber.tone.value,
        )
        return DigestPayload(
            subject=subject,
            text_body=text_body,
            html_body=html_body,
            event_ids=[item.event_id for item in items],
            tone=subscriber.tone,
        )
