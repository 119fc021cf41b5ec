"""RSS/Atom feed collector."""

import calendar
from collections.abc import Iterator
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import feedparser  # type: ignore[import-untyped]
import structlog

from src.collectors.base import BaseCollector, RawItem
from src.collectors.errors import MalformedPayloadError
from src.config.schemas.sources import SourceConfig


logger = structlog.get_logger()


class RssAtomCollector(BaseCollector):
    """Collector for RSS and Atom feeds.

    Parses standard RSS 2.0 and Atom 1.0 feeds using feedparser.
    Extracts title, link, published date, and summary/content.
    """

    def pull(self, source: SourceConfig, since: datetime | None) -> Iterator[RawItem]:
        """Yield feed entries published after ``since``.

        The feed is downloaded on the first ``next()`` call.

        Raises:
            SourceUnreachableError: If the feed cannot be fetched.
            RateLimitedError: If the source answers HTTP 429.
            MalformedPayloadError: If the body is not a usable feed.
        """
        return self.limit(self._iter_entries(source, since), source.max_items)

    def _iter_entries(
        self, source: SourceConfig, since: datetime | None
    ) -> Iterator[RawItem]:
        log = logger.bind(
            component="collector",
            source_id=source.id,
            method="rss_atom",
        )

        feed = feedparser.parse(self.fetch(source))

        if feed.bozo and not feed.entries:
            msg = f"Unparseable feed: {feed.get('bozo_exception')}"
            raise MalformedPayloadError(msg, source.id)
        if feed.bozo:
            log.warning(
                "feed_parse_warning",
                bozo_exception=str(feed.get("bozo_exception")),
            )

        skipped = 0
        for entry in feed.entries:
            item = self._parse_entry(entry, source)
            if item is None:
                skipped += 1
                continue
            if not self.is_new(item.published_at, since):
                continue
            yield item

        if skipped:
            log.info("entries_skipped", skipped=skipped)

    def _parse_entry(
        self,
        entry: feedparser.FeedParserDict,
        source: SourceConfig,
    ) -> RawItem | None:
        """Parse a single feed entry.

        Returns:
            RawItem, or None when the entry has neither a title nor a body.
        """
        link = entry.get("link", "")
        if not link:
            links = entry.get("links", [])
            for link_entry in links:
                if link_entry.get("rel") == "alternate":
                    link = link_entry.get("href", "")
                    break
            if not link and links:
                link = links[0].get("href", "")

        url = self.resolve_url(link, source.url) if link else None

        body = ""
        contents = entry.get("content") or []
        if contents:
            body = contents[0].get("value", "")
        if not body:
            body = entry.get("summary", "") or entry.get("description", "")
        body = self.clean_text(body)

        title = self.clean_text(entry.get("title", ""))
        if not title and not body:
            return None
        if not title:
            title = f"Untitled from {source.name}"

        return RawItem(
            title=title,
            body=body,
            url=url,
            published_at=self._extract_date(entry),
        )

    def _extract_date(self, entry: feedparser.FeedParserDict) -> datetime | None:
        """Extract publication date from entry.

        Prefers the parsed published date, then the updated date.
        """
        for key in ("published_parsed", "updated_parsed"):
            parsed = entry.get(key)
            if parsed:
                try:
                    return datetime.fromtimestamp(calendar.timegm(parsed), tz=UTC)
                except (ValueError, OverflowError):
                    continue

        for key in ("published", "updated"):
            raw = entry.get(key)
            if raw:
                try:
                    return parsedate_to_datetime(raw).astimezone(UTC)
                except (ValueError, TypeError):
                    continue

        return None
