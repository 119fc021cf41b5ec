"""Importance scoring for events."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from src.config.schemas.topics import ScoringConfig, TopicLexicon
from src.store.models import Topic


# Recency credit for items whose publication time is unknown
UNKNOWN_AGE_RECENCY = 0.5

NEUTRAL_WEIGHT = 1.0


@dataclass(frozen=True)
class ScoringFeatures:
    """Content features that drive the importance score.

    Attributes:
        source_trust: Trust of the originating source (0..1).
        age_hours: Item age at collection time, None if unknown.
        category_tags: Topics assigned by the classifier.
        keyword_hits: Lexicon plus watchlist keyword hits.
    """

    source_trust: float
    age_hours: float | None
    category_tags: tuple[Topic, ...] = ()
    keyword_hits: int = 0


@dataclass(frozen=True)
class ScoreBreakdown:
    """Breakdown of an importance score into components.

    Attributes:
        trust: Contribution of source trust.
        recency: Contribution of recency decay.
        salience: Contribution of the most salient category.
        density: Contribution of keyword density.
        total: Clamped sum of all components.
    """

    trust: float
    recency: float
    salience: float
    density: float
    total: float

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary for serialization."""
        return {
            "trust": self.trust,
            "recency": self.recency,
            "salience": self.salience,
            "density": self.density,
            "total": self.total,
        }


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class ImportanceScorer:
    """Computes a deterministic 0..10 importance score from content features.

    Scoring formula:
        score = trust + recency + salience + density

    Where:
        - trust: trust_weight * source_trust
        - recency: recency_weight * 0.5 ** (age_hours / half_life)
        - salience: salience_weight * max salience of the event's topics
        - density: density_weight * min(1, keyword_hits / saturation)

    The score never depends on a subscriber; personal weights are applied
    at selection time by ``effective_score``.
    """

    def __init__(
        self,
        config: ScoringConfig,
        lexicons: Iterable[TopicLexicon] = (),
    ) -> None:
        """Initialize the scorer.

        Args:
            config: Scoring weights.
            lexicons: Topic lexicons providing per-topic salience.
        """
        self._config = config
        self._salience: dict[Topic, float] = {
            lex.topic: lex.salience for lex in lexicons
        }

    def score(self, features: ScoringFeatures) -> ScoreBreakdown:
        """Score one event.

        Args:
            features: Content features of the event.

        Returns:
            ScoreBreakdown whose total lies in [0, max_score].
        """
        config = self._config

        trust = config.trust_weight * _clamp(features.source_trust, 0.0, 1.0)

        if features.age_hours is None:
            recency_factor = UNKNOWN_AGE_RECENCY
        else:
            age_hours = max(0.0, features.age_hours)
            recency_factor = 0.5 ** (age_hours / config.recency_half_life_hours)
        recency = config.recency_weight * recency_factor

        salience = config.salience_weight * max(
            (self._salience.get(tag, 0.0) for tag in features.category_tags),
            default=0.0,
        )

        density = config.density_weight * min(
            1.0, features.keyword_hits / config.keyword_saturation
        )

        total = _clamp(trust + recency + salience + density, 0.0, config.max_score)
        return ScoreBreakdown(
            trust=trust,
            recency=recency,
            salience=salience,
            density=density,
            total=total,
        )


def effective_weight(
    weights: Mapping[Topic, float],
    categories: Iterable[Topic],
    interests: Iterable[Topic] = (),
) -> float:
    """Pick the recalibration weight that applies to an event.

    Uses the highest weight among the event's categories that the subscriber
    is interested in; when none of them is an interest, the highest weight
    among all event categories. Missing weights read as 1.0, and an event
    without categories gets the neutral weight.

    Args:
        weights: Subscriber's recalibration weights.
        categories: Event category tags.
        interests: Subscriber interests.

    Returns:
        Multiplier to apply to the base score.
    """
    categories = list(categories)
    if not categories:
        return NEUTRAL_WEIGHT

    interest_set = set(interests)
    relevant = [c for c in categories if c in interest_set] or categories
    return max(weights.get(c, NEUTRAL_WEIGHT) for c in relevant)


def effective_score(
    base: float,
    weights: Mapping[Topic, float],
    categories: Iterable[Topic],
    interests: Iterable[Topic] = (),
    max_score: float = 10.0,
) -> float:
    """Apply a subscriber's recalibration weight to a base score.

    Args:
        base: Stored importance score.
        weights: Subscriber's recalibration weights.
        categories: Event category tags.
        interests: Subscriber interests.
        max_score: Upper clamp.

    Returns:
        Personalized score in [0, max_score].
    """
    weight = effective_weight(weights, categories, interests)
    return _clamp(base * weight, 0.0, max_score)
