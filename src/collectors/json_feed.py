"""JSON Feed (jsonfeed.org) collector."""

import json
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from dateutil import parser as date_parser

from src.collectors.base import BaseCollector, RawItem
from src.collectors.errors import MalformedPayloadError
from src.config.schemas.sources import SourceConfig
from src.data_model import as_utc


class JsonFeedCollector(BaseCollector):
    """Collector for JSON Feed 1.0/1.1 documents."""

    def pull(self, source: SourceConfig, since: datetime | None) -> Iterator[RawItem]:
        """Yield feed items published after ``since``.

        Raises:
            SourceUnreachableError: If the feed cannot be fetched.
            MalformedPayloadError: If the body is not a JSON Feed.
        """
        return self.limit(self._iter_items(source, since), source.max_items)

    def _iter_items(
        self, source: SourceConfig, since: datetime | None
    ) -> Iterator[RawItem]:
        body = self.fetch(source)
        try:
            document = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            msg = f"Invalid JSON: {e}"
            context = body[:200].decode("utf-8", "replace")
            raise MalformedPayloadError(msg, source.id, context=context) from e

        if not isinstance(document, dict) or not isinstance(document.get("items"), list):
            msg = "JSON Feed document must be an object with an 'items' list"
            raise MalformedPayloadError(msg, source.id)

        for entry in document["items"]:
            if not isinstance(entry, dict):
                continue
            item = self._parse_item(entry, source)
            if item is not None and self.is_new(item.published_at, since):
                yield item

    def _parse_item(
        self, entry: dict[str, Any], source: SourceConfig
    ) -> RawItem | None:
        link = entry.get("url") or entry.get("external_url") or ""
        url = self.resolve_url(link, source.url) if isinstance(link, str) else None

        body = (
            entry.get("content_text")
            or entry.get("content_html")
            or entry.get("summary")
            or ""
        )
        body = self.clean_text(body) if isinstance(body, str) else ""

        title = entry.get("title") or ""
        title = self.clean_text(title) if isinstance(title, str) else ""
        if not title and not body:
            return None
        if not title:
            title = body[:120]

        return RawItem(
            title=title,
            body=body,
            url=url,
            published_at=self._parse_date(
                entry.get("date_published") or entry.get("date_modified")
            ),
        )

    def _parse_date(self, value: Any) -> datetime | None:
        """Parse a feed timestamp, returning None when invalid.

        RFC 3339 is expected but common variants (RFC 822, missing colon in
        the offset) are accepted.
        """
        if not isinstance(value, str) or not value:
            return None
        try:
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError):
            return None
        return as_utc(parsed)
