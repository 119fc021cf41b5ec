"""Data models for the SQLite state store."""

import re
import zoneinfo
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import Field, field_validator

from src.data_model import StrictBaseModel


MAX_INTERESTS = 4
MAX_DELIVERY_SLOTS = 2
VALID_RATINGS: frozenset[int] = frozenset({1, 3, 5})

_SLOT_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class Topic(str, Enum):
    """Closed topic enumeration used for interests and category tags."""

    TECHNOLOGY = "technology"
    POLITICS = "politics"
    FINANCE = "finance"
    AI = "ai"
    CLOUD = "cloud"
    CYBERSECURITY = "cybersecurity"
    WEB3 = "web3"
    DEVOPS = "devops"
    SPORTS = "sports"
    STARTUPS = "startups"
    SCIENCE = "science"
    BUSINESS = "business"
    GEOPOLITICS = "geopolitics"


class Tone(str, Enum):
    """Digest rendering style.

    - CONCISE: title and link only
    - DETAILED: adds a short summary
    - TECHNICAL: adds summary, tags, matched keywords and score
    """

    CONCISE = "concise"
    DETAILED = "detailed"
    TECHNICAL = "technical"


class EventStatus(str, Enum):
    """Lifecycle status of an Event.

    - COLLECTED: Ingested, waiting for processing
    - PROCESSING: Claimed by exactly one processor worker
    - PROCESSED: Classified and scored, eligible for digests
    - ERRORED: Processing retries exhausted, excluded from digests
    """

    COLLECTED = "collected"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERRORED = "errored"


class SlotStatus(str, Enum):
    """Outcome of a (subscriber, slot, local day) evaluation.

    - CLAIMED: Evaluation in progress (or interrupted)
    - SENT: Digest delivered
    - EMPTY: No candidates, nothing sent
    - FAILED: Delivery failed permanently or retries exhausted
    """

    CLAIMED = "claimed"
    SENT = "sent"
    EMPTY = "empty"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Subscriber(StrictBaseModel):
    """Subscriber interest profile.

    Created and edited by the external registration/onboarding layer.
    The pipeline only reads it.
    """

    id: Annotated[str, Field(min_length=1, description="Subscriber identifier")]
    email: Annotated[str, Field(min_length=3, description="Delivery address")]
    interests: Annotated[
        list[Topic],
        Field(min_length=1, description="Topic interests (at most 4)"),
    ]
    keywords: list[str] = Field(default_factory=list, description="Free-text keywords")
    delivery_slots: Annotated[
        list[str],
        Field(min_length=1, description="Local delivery times, HH:MM (at most 2)"),
    ]
    min_importance_score: Annotated[float, Field(ge=0.0, le=10.0)] = 5.0
    tone: Tone = Tone.CONCISE
    timezone: str = Field(default="UTC", description="IANA timezone name")
    active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Lowercase and trim the address."""
        v = v.strip().lower()
        if "@" not in v:
            msg = f"Invalid email address: {v}"
            raise ValueError(msg)
        return v

    @field_validator("interests")
    @classmethod
    def validate_interests(cls, v: list[Topic]) -> list[Topic]:
        """Deduplicate interests and enforce the maximum."""
        unique = list(dict.fromkeys(v))
        if len(unique) > MAX_INTERESTS:
            msg = f"At most {MAX_INTERESTS} interests allowed, got {len(unique)}"
            raise ValueError(msg)
        return unique

    @field_validator("keywords")
    @classmethod
    def validate_keywords(cls, v: list[str]) -> list[str]:
        """Trim keywords and drop case-insensitive duplicates."""
        seen: set[str] = set()
        cleaned: list[str] = []
        for keyword in v:
            stripped = keyword.strip()
            if not stripped:
                msg = "Keywords must be non-empty strings"
                raise ValueError(msg)
            if stripped.lower() in seen:
                continue
            seen.add(stripped.lower())
            cleaned.append(stripped)
        return cleaned

    @field_validator("delivery_slots")
    @classmethod
    def validate_slots(cls, v: list[str]) -> list[str]:
        """Validate HH:MM format and the slot limit."""
        unique = list(dict.fromkeys(s.strip() for s in v))
        if len(unique) > MAX_DELIVERY_SLOTS:
            msg = f"At most {MAX_DELIVERY_SLOTS} delivery slots allowed"
            raise ValueError(msg)
        for slot in unique:
            if not _SLOT_PATTERN.match(slot):
                msg = f"Invalid delivery slot '{slot}', expected HH:MM"
                raise ValueError(msg)
        return unique

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the timezone resolves."""
        try:
            zoneinfo.ZoneInfo(v)
        except (KeyError, ValueError, zoneinfo.ZoneInfoNotFoundError) as e:
            msg = f"Unknown timezone: {v}"
            raise ValueError(msg) from e
        return v

    @property
    def zone(self) -> zoneinfo.ZoneInfo:
        """Get the subscriber's timezone."""
        return zoneinfo.ZoneInfo(self.timezone)

    @property
    def keyword_set(self) -> frozenset[str]:
        """Get lowercased keywords for matching."""
        return frozenset(k.lower() for k in self.keywords)


class Event(StrictBaseModel):
    """Canonical collected item with status lifecycle.

    The fingerprint is unique across all stored events.
    """

    id: Annotated[str, Field(min_length=1, description="Event identifier")]
    source_id: Annotated[str, Field(min_length=1, description="Source identifier")]
    fingerprint: Annotated[str, Field(min_length=1, description="Dedup key")]
    title: Annotated[str, Field(min_length=1, description="Item title")]
    url: str | None = Field(default=None, description="Canonical URL")
    body: str = Field(default="", description="Raw item body")
    published_at: datetime | None = Field(default=None)
    source_trust: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5
    category_tags: list[Topic] = Field(default_factory=list)
    matched_keywords: list[str] = Field(default_factory=list)
    importance_score: float | None = Field(default=None)
    status: EventStatus = EventStatus.COLLECTED
    attempts: Annotated[int, Field(ge=0)] = 0
    last_error: str | None = None
    collected_at: datetime = Field(default_factory=_utcnow)
    processed_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> EventStatus:
        """Coerce string to EventStatus enum."""
        if isinstance(v, EventStatus):
            return v
        if isinstance(v, str):
            return EventStatus(v.lower())
        msg = f"Invalid status: {v}"
        raise ValueError(msg)


class UserEvent(StrictBaseModel):
    """Per-subscriber delivery and feedback record."""

    subscriber_id: Annotated[str, Field(min_length=1)]
    event_id: Annotated[str, Field(min_length=1)]
    delivered_at: datetime
    rating: int | None = None
    rated_at: datetime | None = None

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v: int | None) -> int | None:
        """Only 1, 3 and 5 are valid ratings."""
        if v is not None and v not in VALID_RATINGS:
            msg = f"Invalid rating: {v}"
            raise ValueError(msg)
        return v


class RecalibrationWeight(StrictBaseModel):
    """Per-subscriber, per-category score multiplier."""

    subscriber_id: Annotated[str, Field(min_length=1)]
    category: Topic
    weight: float = 1.0
    updated_at: datetime = Field(default_factory=_utcnow)


class RatingUpdate(StrictBaseModel):
    """Result of storing one rating.

    Attributes:
        previous_rating: Rating before this update, if any.
        applied_delta: Weight change applied to each category.
        weights: Weight per category of the rated event after the update.
    """

    previous_rating: int | None = None
    applied_delta: float = 0.0
    weights: dict[Topic, float] = Field(default_factory=dict)


class DigestSlotRecord(StrictBaseModel):
    """Idempotency ledger entry for one (subscriber, slot, local day)."""

    subscriber_id: Annotated[str, Field(min_length=1)]
    slot: Annotated[str, Field(min_length=5, max_length=5)]
    local_date: Annotated[str, Field(description="ISO date in subscriber timezone")]
    status: SlotStatus = SlotStatus.CLAIMED
    event_ids: list[str] = Field(default_factory=list)
    attempts: Annotated[int, Field(ge=0)] = 0
    failure_reason: str | None = None
    claimed_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None


class SourceWatermark(StrictBaseModel):
    """Collection progress for one source."""

    source_id: Annotated[str, Field(min_length=1)]
    since: datetime | None = None
    last_status: str | None = None
    last_error: str | None = None
    updated_at: datetime = Field(default_factory=_utcnow)


class IngestOutcome(str, Enum):
    """Outcome of ingesting one raw item.

    - NEW: A new Event was stored in collected status
    - DUPLICATE: The fingerprint already existed, nothing was written
    """

    NEW = "NEW"
    DUPLICATE = "DUPLICATE"
