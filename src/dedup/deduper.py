"""Content deduplication at ingestion time."""

import uuid
from datetime import datetime

import structlog

from src.collectors.base import RawItem
from src.config.schemas.sources import SourceConfig
from src.store.errors import DuplicateFingerprintError
from src.store.hash import compute_fingerprint
from src.store.models import Event, EventStatus, IngestOutcome
from src.store.store import StateStore
from src.store.url import DEFAULT_STRIP_PARAMS, canonicalize_url


logger = structlog.get_logger()


class Deduplicator:
    """Turns raw items into unique collected Events.

    The fingerprint UNIQUE constraint in the store is the authority: two
    collectors racing on the same content both attempt the insert and the
    loser observes ``DuplicateFingerprintError``, reported as DUPLICATE.
    """

    def __init__(
        self,
        store: StateStore,
        extra_strip_params: list[str] | None = None,
    ) -> None:
        """Initialize the deduplicator.

        Args:
            store: State store holding events.
            extra_strip_params: Tracking parameters stripped from URLs
                in addition to the defaults.
        """
        self._store = store
        self._strip_params = [*DEFAULT_STRIP_PARAMS, *(extra_strip_params or [])]
        self._log = logger.bind(component="dedup")

    def fingerprint(self, raw: RawItem) -> str:
        """Compute the dedup fingerprint of a raw item."""
        return compute_fingerprint(
            title=raw.title,
            url=raw.url,
            body=raw.body,
            strip_params=self._strip_params,
        )

    def is_duplicate(self, fingerprint: str) -> bool:
        """Check whether an Event with this fingerprint is already stored."""
        return self._store.has_fingerprint(fingerprint)

    def ingest(
        self, source: SourceConfig, raw: RawItem, now: datetime
    ) -> IngestOutcome:
        """Store a raw item as a new collected Event unless already known.

        Args:
            source: Source the item came from.
            raw: The collected item.
            now: Collection timestamp.

        Returns:
            NEW if an Event was created, DUPLICATE otherwise.

        Raises:
            StoreUnavailableError: If the database cannot be written.
        """
        fingerprint = self.fingerprint(raw)

        event = Event(
            id=uuid.uuid4().hex,
            source_id=source.id,
            fingerprint=fingerprint,
            title=raw.title,
            url=canonicalize_url(raw.url, self._strip_params) if raw.url else None,
            body=raw.body,
            published_at=raw.published_at,
            source_trust=source.trust,
            status=EventStatus.COLLECTED,
            collected_at=now,
        )

        try:
            self._store.insert_event(event)
        except DuplicateFingerprintError:
            self._log.debug(
                "duplicate_skipped",
                source_id=source.id,
                fingerprint=fingerprint,
            )
            return IngestOutcome.DUPLICATE

        self._log.debug(
            "event_collected",
            source_id=source.id,
            event_id=event.id,
            fingerprint=fingerprint,
        )
        return IngestOutcome.NEW
