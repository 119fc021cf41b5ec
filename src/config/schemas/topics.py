"""Topic lexicon and scoring schema."""

from typing import Annotated

from pydantic import Field, model_validator

from src.data_model import StrictBaseModel
from src.store.models import Topic


class TopicLexicon(StrictBaseModel):
    """Keyword lexicon and salience for one topic.

    Attributes:
        topic: Topic from the closed enumeration.
        keywords: Keywords whose presence tags an event with the topic.
        salience: How important the topic is on its own (0..1).
    """

    topic: Topic
    keywords: Annotated[list[str], Field(min_length=1)]
    salience: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5

    @model_validator(mode="after")
    def validate_keywords_non_empty(self) -> "TopicLexicon":
        """Ensure keywords list contains non-empty strings."""
        for keyword in self.keywords:
            if not keyword.strip():
                msg = "Keywords must be non-empty strings"
                raise ValueError(msg)
        return self


class ScoringConfig(StrictBaseModel):
    """Importance scoring weights.

    The four component weights are the maximum contribution of each
    feature; with the defaults they add up to the 10-point scale.

    Attributes:
        trust_weight: Weight of the source trust feature.
        recency_weight: Weight of the recency feature.
        salience_weight: Weight of the category salience feature.
        density_weight: Weight of the keyword density feature.
        recency_half_life_hours: Age at which recency credit halves.
        keyword_saturation: Keyword hits that earn full density credit.
        max_score: Upper clamp of the score range.
    """

    trust_weight: Annotated[float, Field(ge=0.0, le=10.0)] = 3.0
    recency_weight: Annotated[float, Field(ge=0.0, le=10.0)] = 3.0
    salience_weight: Annotated[float, Field(ge=0.0, le=10.0)] = 2.5
    density_weight: Annotated[float, Field(ge=0.0, le=10.0)] = 1.5
    recency_half_life_hours: Annotated[float, Field(gt=0.0, le=24.0 * 30)] = 24.0
    keyword_saturation: Annotated[int, Field(ge=1, le=100)] = 3
    max_score: Annotated[float, Field(gt=0.0, le=100.0)] = 10.0
