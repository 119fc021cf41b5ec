"""SQLite state store for subscribers, events, deliveries and feedback.

This module provides persistent storage for:
- Subscriber profiles written by the registration layer
- Events with a monotonic status lifecycle and fingerprint uniqueness
- UserEvent delivery/rating records and recalibration weights
- The digest slot ledger and per-source collection watermarks
"""

from src.store.errors import (
    ConnectionError,
    DuplicateFingerprintError,
    EventNotFoundError,
    EventNotProcessedError,
    MigrationError,
    StateStoreError,
    StoreUnavailableError,
    SubscriberNotFoundError,
)
from src.store.hash import compute_fingerprint, normalize_text
from src.store.metrics import StoreMetrics
from src.store.models import (
    DigestSlotRecord,
    Event,
    EventStatus,
    IngestOutcome,
    RatingUpdate,
    RecalibrationWeight,
    SlotStatus,
    SourceWatermark,
    Subscriber,
    Tone,
    Topic,
    UserEvent,
)
from src.store.state_machine import EventLifecycle, InvalidTransitionError
from src.store.store import StateStore
from src.store.url import canonicalize_url, dedup_url_key


__all__ = [
    # Errors
    "ConnectionError",
    "DuplicateFingerprintError",
    "EventNotFoundError",
    "EventNotProcessedError",
    "InvalidTransitionError",
    "MigrationError",
    "StateStoreError",
    "StoreUnavailableError",
    "SubscriberNotFoundError",
    # Fingerprints
    "compute_fingerprint",
    "normalize_text",
    # Metrics
    "StoreMetrics",
    # Models
    "DigestSlotRecord",
    "Event",
    "EventStatus",
    "IngestOutcome",
    "RatingUpdate",
    "RecalibrationWeight",
    "SlotStatus",
    "SourceWatermark",
    "Subscriber",
    "Tone",
    "Topic",
    "UserEvent",
    # Lifecycle
    "EventLifecycle",
    # Store
    "StateStore",
    # URL utilities
    "canonicalize_url",
    "dedup_url_key",
]
