"""Candidate selection and ranking for a subscriber's digest."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.processing.scorer import effective_score
from src.store.models import Event, EventStatus, Subscriber, Topic
from src.store.store import StateStore


DEFAULT_MAX_ITEMS = 10
DEFAULT_WINDOW_HOURS = 24


@dataclass(frozen=True)
class RankedEvent:
    """A selected event with its personalized score."""

    event: Event
    effective_score: float


def matches_profile(subscriber: Subscriber, event: Event) -> bool:
    """Check interest or keyword overlap between a subscriber and an event.

    Keywords are compared case-insensitively.
    """
    if set(event.category_tags) & set(subscriber.interests):
        return True
    event_keywords = {k.lower() for k in event.matched_keywords}
    return bool(event_keywords & subscriber.keyword_set)


def rank_candidates(  # noqa: PLR0913
    subscriber: Subscriber,
    events: Iterable[Event],
    weights: Mapping[Topic, float],
    delivered: set[str] | frozenset[str] = frozenset(),
    max_items: int = DEFAULT_MAX_ITEMS,
    max_score: float = 10.0,
) -> list[RankedEvent]:
    """Filter and rank events for one subscriber.

    An event is included iff it is processed, overlaps the profile, was not
    delivered before, and its effective score reaches the subscriber's
    threshold. Ranking is by effective score (descending), then newest
    collection time, then event id.

    Args:
        subscriber: Recipient profile.
        events: Candidate events.
        weights: Subscriber's recalibration weights.
        delivered: IDs of events already delivered to the subscriber.
        max_items: Maximum number of events returned.
        max_score: Score upper bound.

    Returns:
        Ranked events, at most ``max_items``.
    """
    ranked: list[RankedEvent] = []
    for event in events:
        if event.status != EventStatus.PROCESSED or event.importance_score is None:
            continue
        if event.id in delivered or not matches_profile(subscriber, event):
            continue
        score = effective_score(
            event.importance_score,
            weights,
            event.category_tags,
            subscriber.interests,
            max_score=max_score,
        )
        if score < subscriber.min_importance_score:
            continue
        ranked.append(RankedEvent(event=event, effective_score=score))

    ranked.sort(
        key=lambda r: (
            -r.effective_score,
            -r.event.collected_at.timestamp(),
            r.event.id,
        )
    )
    return ranked[:max_items]


class CandidateSelector:
    """Loads recent processed events and ranks them for a subscriber."""

    def __init__(
        self,
        store: StateStore,
        max_items: int = DEFAULT_MAX_ITEMS,
        window_hours: int = DEFAULT_WINDOW_HOURS,
        max_score: float = 10.0,
    ) -> None:
        """Initialize the selector.

        Args:
            store: State store.
            max_items: Maximum events per digest.
            window_hours: Only events collected this recently qualify.
            max_score: Score upper bound.
        """
        self._store = store
        self._max_items = max_items
        self._window = timedelta(hours=window_hours)
        self._max_score = max_score

    def select(self, subscriber: Subscriber, now: datetime) -> list[RankedEvent]:
        """Select the events for a subscriber's digest at ``now``."""
        return rank_candidates(
            subscriber,
            self._store.list_processed_events(collected_since=now - self._window),
            self._store.get_weights(subscriber.id),
            delivered=self._store.get_delivered_event_ids(subscriber.id),
            max_items=self._max_items,
            max_score=self._max_score,
        )
