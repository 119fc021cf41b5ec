"""Unit tests for importance scoring and personal weights."""

import pytest

from src.config.schemas.topics import ScoringConfig, TopicLexicon
from src.processing.scorer import (
    ImportanceScorer,
    ScoringFeatures,
    effective_score,
    effective_weight,
)
from src.store.models import Topic


@pytest.fixture
def scorer() -> ImportanceScorer:
    """Create a scorer with default weights."""
    lexicons = [TopicLexicon(topic=Topic.AI, keywords=["ai"], salience=0.8)]
    return ImportanceScorer(ScoringConfig(), lexicons)


class TestImportanceScorer:
    """Tests for ImportanceScorer.score."""

    def test_full_score(self, scorer: ImportanceScorer) -> None:
        """A fresh, trusted, salient, keyword-dense event scores high."""
        breakdown = scorer.score(
            ScoringFeatures(
                source_trust=1.0,
                age_hours=0.0,
                category_tags=(Topic.AI,),
                keyword_hits=3,
            )
        )
        assert breakdown.trust == pytest.approx(3.0)
        assert breakdown.recency == pytest.approx(3.0)
        assert breakdown.salience == pytest.approx(2.0)
        assert breakdown.density == pytest.approx(1.5)
        assert breakdown.total == pytest.approx(9.5)

    def test_recency_halves_per_half_life(self, scorer: ImportanceScorer) -> None:
        """Recency credit halves after one half-life."""
        breakdown = scorer.score(ScoringFeatures(source_trust=0.0, age_hours=24.0))
        assert breakdown.recency == pytest.approx(1.5)

    def test_unknown_age(self, scorer: ImportanceScorer) -> None:
        """Undated events get half recency credit."""
        breakdown = scorer.score(ScoringFeatures(source_trust=0.0, age_hours=None))
        assert breakdown.recency == pytest.approx(1.5)

    def test_unknown_topic_has_no_salience(self, scorer: ImportanceScorer) -> None:
        """Topics without a lexicon contribute no salience."""
        breakdown = scorer.score(
            ScoringFeatures(source_trust=0.5, age_hours=1.0, category_tags=(Topic.SPORTS,))
        )
        assert breakdown.salience == 0.0

    def test_clamped_to_max_score(self) -> None:
        """Totals are clamped to max_score."""
        scorer = ImportanceScorer(ScoringConfig(max_score=5.0))
        breakdown = scorer.score(
            ScoringFeatures(source_trust=1.0, age_hours=0.0, keyword_hits=10)
        )
        assert breakdown.total == 5.0

    def test_deterministic(self, scorer: ImportanceScorer) -> None:
        """Equal features always give equal scores."""
        features = ScoringFeatures(source_trust=0.7, age_hours=5.0, keyword_hits=1)
        assert scorer.score(features) == scorer.score(features)


class TestEffectiveScore:
    """Tests for effective_weight and effective_score."""

    def test_weight_applied(self) -> None:
        """The category weight multiplies the base score."""
        assert effective_score(6.0, {Topic.AI: 0.5}, [Topic.AI]) == pytest.approx(3.0)

    def test_missing_weight_is_neutral(self) -> None:
        """Categories without a stored weight read as 1.0."""
        assert effective_score(6.0, {}, [Topic.AI]) == pytest.approx(6.0)

    def test_interest_categories_preferred(self) -> None:
        """Weights of interest categories take precedence."""
        weights = {Topic.AI: 0.5, Topic.CLOUD: 2.0}
        assert effective_weight(weights, [Topic.AI, Topic.CLOUD], [Topic.AI]) == 0.5
        assert effective_weight(weights, [Topic.AI, Topic.CLOUD], [Topic.SPORTS]) == 2.0

    def test_no_categories(self) -> None:
        """Events without categories keep their base score."""
        assert effective_score(4.0, {Topic.AI: 0.2}, []) == pytest.approx(4.0)

    def test_clamped(self) -> None:
        """Personalized scores stay within [0, max_score]."""
        assert effective_score(8.0, {Topic.AI: 2.0}, [Topic.AI]) == 10.0
