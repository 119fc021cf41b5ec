"""Unit tests for ingestion-time deduplication."""

from collections.abc import Generator
from pathlib import Path

import pytest

from src.collectors.base import RawItem
from src.config.schemas.sources import SourceConfig
from src.dedup.deduper import Deduplicator
from src.store.models import EventStatus, IngestOutcome
from src.store.store import StateStore
from tests.helpers.time import FIXED_NOW


def make_source(source_id: str, trust: float = 0.5) -> SourceConfig:
    """Create a test SourceConfig."""
    return SourceConfig(
        id=source_id,
        name=source_id,
        url=f"https://{source_id}.example.com/feed",
        trust=trust,
    )


@pytest.fixture
def store(tmp_path: Path) -> Generator[StateStore]:
    """Create a connected state store."""
    store = StateStore(tmp_path / "state.sqlite")
    store.connect()
    yield store
    store.close()


class TestDeduplicator:
    """Tests for Deduplicator.ingest."""

    def test_new_item_stored_as_collected(self, store: StateStore) -> None:
        """A new item becomes a collected Event with a canonical URL."""
        dedup = Deduplicator(store)
        item = RawItem(
            title="Cloud outage",
            url="https://news.example.com/outage?utm_source=rss&id=7",
        )

        assert dedup.ingest(make_source("a", trust=0.9), item, FIXED_NOW) == IngestOutcome.NEW

        events = store.list_events(status=EventStatus.COLLECTED, limit=10)
        assert len(events) == 1
        assert events[0].url == "https://news.example.com/outage?id=7"
        assert events[0].source_trust == 0.9
        assert events[0].collected_at == FIXED_NOW

    def test_same_content_from_two_sources(self, store: StateStore) -> None:
        """The second source's copy is reported as a duplicate."""
        dedup = Deduplicator(store)
        item = RawItem(title="Cloud outage", url="https://news.example.com/outage")

        assert dedup.ingest(make_source("a"), item, FIXED_NOW) == IngestOutcome.NEW
        assert dedup.ingest(make_source("b"), item, FIXED_NOW) == IngestOutcome.DUPLICATE
        assert store.count_events_by_status()["collected"] == 1

    def test_near_duplicates_collapse(self, store: StateStore) -> None:
        """Casing, whitespace and tracking parameters do not create new events."""
        dedup = Deduplicator(store)
        first = RawItem(title="Cloud  Outage", url="https://www.news.example.com/outage/")
        second = RawItem(
            title="cloud outage", url="http://news.example.com/outage?utm_medium=x"
        )

        assert dedup.ingest(make_source("a"), first, FIXED_NOW) == IngestOutcome.NEW
        assert dedup.ingest(make_source("b"), second, FIXED_NOW) == IngestOutcome.DUPLICATE

    def test_items_without_url_use_body(self, store: StateStore) -> None:
        """Without a URL, the body distinguishes items with the same title."""
        dedup = Deduplicator(store)
        source = make_source("a")
        outcomes = [
            dedup.ingest(source, RawItem(title="Update", body=body), FIXED_NOW)
            for body in ("one", "two", "One")
        ]

        assert outcomes == [
            IngestOutcome.NEW,
            IngestOutcome.NEW,
            IngestOutcome.DUPLICATE,
        ]

    def test_extra_strip_params(self, store: StateStore) -> None:
        """Configured parameters are stripped on top of the defaults."""
        dedup = Deduplicator(store, extra_strip_params=["ncid"])
        first = RawItem(title="Story", url="https://news.example.com/s?ncid=rss")
        second = RawItem(title="Story", url="https://news.example.com/s?ncid=tw")

        assert dedup.ingest(make_source("a"), first, FIXED_NOW) == IngestOutcome.NEW
        assert dedup.ingest(make_source("a"), second, FIXED_NOW) == IngestOutcome.DUPLICATE

    def test_is_duplicate(self, store: StateStore) -> None:
        """is_duplicate reflects stored fingerprints."""
        dedup = Deduplicator(store)
        item = RawItem(title="Story", url="https://news.example.com/s")
        fingerprint = dedup.fingerprint(item)

        assert not dedup.is_duplicate(fingerprint)
        dedup.ingest(make_source("a"), item, FIXED_NOW)
        assert dedup.is_duplicate(fingerprint)
