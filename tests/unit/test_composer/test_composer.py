"""Unit tests for digest composition."""

from urllib.parse import parse_qs, urlparse

import pytest

from src.composer.composer import DigestComposer, truncate_summary
from src.scheduler.selector import RankedEvent
from src.store.models import Tone, Topic
from tests.helpers.builders import make_event, make_subscriber
from tests.helpers.time import FIXED_NOW


LONG_BODY = "Researchers released a new open model. " * 20


def ranked(title: str = "New open model", score: float = 7.25) -> RankedEvent:
    """Create a ranked, processed event."""
    event = make_event(
        title=title,
        url="https://news.example.com/model",
        body=LONG_BODY,
    ).model_copy(
        update={
            "category_tags": [Topic.AI],
            "matched_keywords": ["llama", "gpu"],
            "importance_score": score,
        }
    )
    return RankedEvent(event=event, effective_score=score)


class TestTruncateSummary:
    """Tests for truncate_summary."""

    def test_short_text_unchanged(self) -> None:
        """Text within the limit is returned stripped."""
        assert truncate_summary("  short  ", 20) == "short"

    def test_cuts_at_word_boundary(self) -> None:
        """Long text is cut at a word boundary with an ellipsis."""
        assert truncate_summary("alpha beta gamma delta", 12) == "alpha beta..."


class TestDigestComposer:
    """Tests for DigestComposer.compose."""

    def test_concise_has_title_and_link_only(self) -> None:
        """Concise digests omit the summary."""
        subscriber = make_subscriber(tone=Tone.CONCISE)
        payload = DigestComposer().compose(subscriber, [ranked()], FIXED_NOW)

        assert "New open model" in payload.text_body
        assert "https://news.example.com/model" in payload.text_body
        assert "Researchers released" not in payload.text_body
        assert "Score:" not in payload.text_body
        assert payload.tone == Tone.CONCISE

    def test_detailed_adds_summary(self) -> None:
        """Detailed digests include a truncated summary."""
        subscriber = make_subscriber(tone=Tone.DETAILED)
        payload = DigestComposer(summary_chars=80).compose(subscriber, [ranked()], FIXED_NOW)

        assert "Researchers released a new open model." in payload.text_body
        assert "..." in payload.text_body
        assert "Score:" not in payload.text_body

    def test_technical_adds_metadata(self) -> None:
        """Technical digests include tags, subscriber keywords and score."""
        subscriber = make_subscriber(tone=Tone.TECHNICAL, keywords=["GPU"])
        payload = DigestComposer().compose(subscriber, [ranked()], FIXED_NOW)

        assert "Topics: ai" in payload.text_body
        assert "Keywords: gpu" in payload.text_body
        assert "llama" not in payload.text_body
        assert "Score: 7.2" in payload.text_body or "Score: 7.3" in payload.text_body

    def test_subject_and_event_ids(self) -> None:
        """Subject counts items; event_ids keep display order."""
        subscriber = make_subscriber(timezone="Europe/Berlin")
        items = [ranked("First"), ranked("Second")]
        payload = DigestComposer().compose(subscriber, items, FIXED_NOW)

        assert payload.subject == "Your intelligence digest for Mon 10 Mar 2025: 2 updates"
        assert payload.event_ids == [items[0].event.id, items[1].event.id]
        assert "2025-03-10 13:00 (Europe/Berlin)" in payload.text_body

    def test_html_escapes_titles(self) -> None:
        """Feed content is escaped in the HTML body."""
        subscriber = make_subscriber()
        payload = DigestComposer().compose(
            subscriber, [ranked("<script>alert(1)</script>")], FIXED_NOW
        )

        assert "<script>" not in payload.html_body
        assert "&lt;script&gt;" in payload.html_body

    def test_feedback_links(self) -> None:
        """Rating links carry event, subscriber and rating."""
        composer = DigestComposer(feedback_base_url="https://digest.example.com/rate")
        item = ranked()
        payload = composer.compose(make_subscriber(), [item], FIXED_NOW)

        links = composer.feedback_links("sub-1", item.event.id)
        assert sorted(links) == [1, 3, 5]
        query = parse_qs(urlparse(links[5]).query)
        assert query == {"event": [item.event.id], "user": ["sub-1"], "rating": ["5"]}
        assert "Useful" in payload.text_body

    def test_no_feedback_links_without_base_url(self) -> None:
        """Rating links are omitted when no base URL is configured."""
        payload = DigestComposer().compose(make_subscriber(), [ranked()], FIXED_NOW)
        assert "Rate this" not in payload.text_body

    @pytest.mark.parametrize("tone", list(Tone))
    def test_same_items_every_tone(self, tone: Tone) -> None:
        """Tone changes verbosity, never the selected events."""
        item = ranked()
        payload = DigestComposer().compose(make_subscriber(tone=tone), [item], FIXED_NOW)
        assert payload.event_ids == [item.event.id]
