"""Data models for digest composition."""

from dataclasses import dataclass, field

from pydantic import Field

from src.data_model import StrictBaseModel
from src.store.models import Tone


@dataclass(frozen=True)
class DigestItem:
    """Template view of one digest entry.

    Attributes:
        event_id: Event identifier.
        title: Event title.
        url: Canonical link, if any.
        summary: Truncated body (detailed and technical tones).
        tags: Category tag values.
        matched_keywords: Subscriber keywords found in the event.
        score: Effective score for this subscriber.
        feedback_links: Rating -> feedback URL.
    """

    event_id: str
    title: str
    url: str | None
    summary: str
    tags: list[str] = field(default_factory=list)
    matched_keywords: list[str] = field(default_factory=list)
    score: float = 0.0
    feedback_links: dict[int, str] = field(default_factory=dict)


class DigestPayload(StrictBaseModel):
    """Rendered digest ready for delivery.

    The payload is built once per slot dispatch and reused unchanged for
    every delivery retry.
    """

    subject: str
    text_body: str
    html_body: str
    event_ids: list[str] = Field(default_factory=list)
    tone: Tone = Tone.CONCISE
