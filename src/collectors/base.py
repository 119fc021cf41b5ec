"""Base collector interface and utilities."""

import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import datetime
from typing import TYPE_CHECKING, Annotated, Protocol, runtime_checkable
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment
from pydantic import Field, field_validator

from src.config.schemas.sources import SourceConfig
from src.data_model import StrictBaseModel, as_utc


if TYPE_CHECKING:
    from src.fetch.client import HttpFetcher


DEFAULT_SOURCE_TIMEOUT_SECONDS = 30.0

# Bodies longer than this are cut before storage
MAX_BODY_CHARS = 20_000

_WHITESPACE = re.compile(r"\s+")


class RawItem(StrictBaseModel):
    """Unprocessed item yielded by a collector.

    Attributes:
        title: Item title.
        body: Plain-text body (may be empty).
        url: Item link, if the source provides one.
        published_at: Publication time in UTC, if known.
    """

    title: Annotated[str, Field(min_length=1)]
    body: str = ""
    url: str | None = None
    published_at: datetime | None = None

    @field_validator("published_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        """Normalize timestamps to aware UTC."""
        return None if v is None else as_utc(v)


@runtime_checkable
class SourceCollector(Protocol):
    """Protocol for source collectors.

    ``pull`` returns a lazy iterator: network and parse work may happen
    while the caller iterates, so callers enforce deadlines between items.
    Overlapping windows are allowed; duplicates are removed downstream.
    """

    def pull(self, source: SourceConfig, since: datetime | None) -> Iterator[RawItem]:
        """Yield items published after ``since``.

        Args:
            source: Configuration for the source.
            since: Watermark of the last successful pull, or None.

        Returns:
            Iterator of raw items.

        Raises:
            CollectionError: On fetch or parse failure.
        """
        ...


class BaseCollector(ABC):
    """Abstract base class for HTTP feed collectors."""

    def __init__(
        self,
        fetcher: "HttpFetcher",
        default_timeout: float = DEFAULT_SOURCE_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the base collector.

        Args:
            fetcher: HTTP client used to download feeds.
            default_timeout: Timeout for sources without their own.
        """
        self._fetcher = fetcher
        self._default_timeout = default_timeout

    @abstractmethod
    def pull(self, source: SourceConfig, since: datetime | None) -> Iterator[RawItem]:
        """Yield items published after ``since``."""

    def timeout_for(self, source: SourceConfig) -> float:
        """Get the effective timeout for a source."""
        return source.timeout_seconds or self._default_timeout

    def fetch(self, source: SourceConfig) -> bytes:
        """Download the source body."""
        return self._fetcher.fetch(
            source_id=source.id,
            url=source.url,
            timeout=self.timeout_for(source),
            extra_headers=source.headers or None,
        )

    def resolve_url(self, url: str, base_url: str) -> str | None:
        """Resolve a possibly relative link against the feed URL.

        Returns:
            Absolute http(s) URL, or None if the link is unusable.
        """
        url = url.strip()
        if not url:
            return None
        if not url.startswith(("http://", "https://")):
            url = urljoin(base_url, url)
        if not url.startswith(("http://", "https://")):
            return None
        return url

    def clean_text(self, text: str) -> str:
        """Strip markup and collapse whitespace in feed text.

        Script and style contents and HTML comments are dropped.
        """
        if "<" in text or "&" in text:
            soup = BeautifulSoup(text, "html.parser")
            for tag in soup(["script", "style", "noscript"]):
                tag.decompose()
            for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
                comment.extract()
            text = soup.get_text(" ")
        return _WHITESPACE.sub(" ", text).strip()[:MAX_BODY_CHARS]

    def is_new(self, published_at: datetime | None, since: datetime | None) -> bool:
        """Check whether an item falls inside the pull window.

        Undated items are always kept; the deduplicator drops repeats.
        """
        if since is None or published_at is None:
            return True
        return published_at >= since

    def limit(self, items: Iterator[RawItem], max_items: int) -> Iterator[RawItem]:
        """Stop after ``max_items`` items (0 means unlimited)."""
        for count, item in enumerate(items, start=1):
            yield item
            if max_items and count >= max_items:
                return
