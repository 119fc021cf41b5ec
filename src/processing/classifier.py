"""Keyword-based topic classification for events.

Topic lexicons and watchlist keywords are compiled to regex patterns
once, then matched against each event's title and body.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from src.config.schemas.topics import TopicLexicon
from src.store.models import Event, Topic


# Keywords this short are prone to substring false positives
# (e.g. "AI" in "MAIN", "FED" in "FEDERATION"), so they get \b guards.
_SHORT_KEYWORD_THRESHOLD = 4

_WORD_CHARS_ONLY = re.compile(r"^\w+$")


def compile_keyword_pattern(keyword: str) -> re.Pattern[str]:
    """Compile a keyword into a case-insensitive regex pattern.

    Short all-word-character keywords (<= _SHORT_KEYWORD_THRESHOLD chars)
    get word-boundary anchors. Keywords containing non-word characters
    (like "c++", "ci/cd") or longer keywords use plain substring matching.

    Args:
        keyword: Raw keyword string.

    Returns:
        Compiled regex pattern.
    """
    keyword = keyword.strip()
    escaped = re.escape(keyword)
    if len(keyword) <= _SHORT_KEYWORD_THRESHOLD and _WORD_CHARS_ONLY.match(keyword):
        return re.compile(rf"\b{escaped}\b", re.IGNORECASE)
    return re.compile(escaped, re.IGNORECASE)


@dataclass(frozen=True)
class Classification:
    """Result of classifying one event.

    Attributes:
        category_tags: Topics whose lexicon matched, in enum order.
        matched_keywords: Watchlist keywords found, lowercased and sorted.
        keyword_hits: Lexicon keyword hits plus matched watchlist keywords.
    """

    category_tags: list[Topic]
    matched_keywords: list[str]
    keyword_hits: int


@dataclass
class CompiledTopic:
    """A topic lexicon with pre-compiled regex patterns."""

    lexicon: TopicLexicon
    patterns: list[re.Pattern[str]] = field(default_factory=list)


class TopicMatcher:
    """Matches text against topic lexicons using pre-compiled patterns."""

    def __init__(self, lexicons: list[TopicLexicon]) -> None:
        """Initialize the matcher.

        Args:
            lexicons: Topic lexicons to match against.
        """
        self._compiled_topics = [
            CompiledTopic(
                lexicon=lexicon,
                patterns=[compile_keyword_pattern(kw) for kw in lexicon.keywords],
            )
            for lexicon in lexicons
        ]

    @property
    def topic_count(self) -> int:
        """Get number of configured topics."""
        return len(self._compiled_topics)

    def count_hits(self, text: str) -> dict[Topic, int]:
        """Count matching lexicon keywords per topic.

        Args:
            text: Text to search.

        Returns:
            Topic -> number of distinct keywords found (topics with hits only).
        """
        hits: dict[Topic, int] = {}
        for compiled in self._compiled_topics:
            count = sum(1 for pattern in compiled.patterns if pattern.search(text))
            if count:
                hits[compiled.lexicon.topic] = count
        return hits


class EventClassifier:
    """Assigns category tags and watchlist keywords to events."""

    def __init__(self, lexicons: list[TopicLexicon]) -> None:
        """Initialize the classifier.

        Args:
            lexicons: Topic lexicons from the pipeline configuration.
        """
        self._matcher = TopicMatcher(lexicons)
        self._watchlist_cache: dict[str, re.Pattern[str]] = {}

    def _watchlist_pattern(self, keyword: str) -> re.Pattern[str]:
        pattern = self._watchlist_cache.get(keyword)
        if pattern is None:
            pattern = compile_keyword_pattern(keyword)
            self._watchlist_cache[keyword] = pattern
        return pattern

    def classify(self, event: Event, watchlist: Iterable[str] = ()) -> Classification:
        """Classify an event.

        Args:
            event: Event to classify.
            watchlist: Subscriber keywords to look for (any case).

        Returns:
            Classification with tags, matched keywords and hit count.
        """
        text = f"{event.title}\n{event.body}"

        topic_hits = self._matcher.count_hits(text)
        category_tags = [topic for topic in Topic if topic in topic_hits]

        keywords = {k.strip().lower() for k in watchlist if k.strip()}
        matched_keywords = sorted(
            k for k in keywords if self._watchlist_pattern(k).search(text)
        )

        return Classification(
            category_tags=category_tags,
            matched_keywords=matched_keywords,
            keyword_hits=sum(topic_hits.values()) + len(matched_keywords),
        )
