"""Unit tests for configuration constants."""

import pytest

from src.config.constants import DEFAULT_TOPIC_LEXICON, VALID_URL_SCHEMES
from src.store.models import Topic


class TestDefaultTopicLexicon:
    """Tests for the built-in topic lexicon."""

    @pytest.mark.unit
    def test_covers_every_topic(self) -> None:
        """Test every topic of the enumeration has a lexicon."""
        assert set(DEFAULT_TOPIC_LEXICON) == set(Topic)

    @pytest.mark.unit
    def test_keywords_are_lowercase_and_non_empty(self) -> None:
        """Test keywords are usable as case-insensitive patterns."""
        for topic, (keywords, _salience) in DEFAULT_TOPIC_LEXICON.items():
            assert keywords, topic
            for keyword in keywords:
                assert keyword.strip() == keyword
                assert keyword == keyword.lower()

    @pytest.mark.unit
    def test_salience_in_range(self) -> None:
        """Test salience values are within 0..1."""
        for _keywords, salience in DEFAULT_TOPIC_LEXICON.values():
            assert 0.0 <= salience <= 1.0


class TestUrlSchemes:
    """Tests for URL scheme constants."""

    @pytest.mark.unit
    def test_http_and_https(self) -> None:
        """Test only web schemes are accepted."""
        assert VALID_URL_SCHEMES == ("http://", "https://")
