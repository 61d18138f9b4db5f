"""
Content Scorer

Combines the readability and sentiment primitives into a single bounded
"AI-visibility readiness" score for one content artifact.

Each readability metric is mapped onto a common 0-100 ease scale
(higher = easier), their mean is the readability subscore, and the
sentiment compound maps onto 0-100 favorability. The composite is a fixed
weighted average of the two.

Usage:
    scorer = ContentScorer()
    record = scorer.score(text, url="https://example.com/blog/post")
    record.composite_score  # 71.42
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from ..errors import EmptyContentError
from .helpers import (
    CITATION_PHRASES,
    FLESCH_EASE_BOUNDS,
    GRADE_EASE_BOUNDS,
    calculate_weighted_average,
    clamp,
    grade_to_ease,
    linear_scale,
    validate_weights,
)
from .page import PageSignals, score_page
from .readability import ReadabilityScores, analyze_readability
from .sentiment import SentimentScores, analyze_sentiment

logger = logging.getLogger(__name__)


COMPOSITE_WEIGHTS: Dict[str, float] = {
    "readability": 0.7,
    "sentiment": 0.3,
}

# Recommendation thresholds
MIN_READING_EASE = 60.0
MIN_WORD_COUNT = 300
MIN_FAVORABILITY = 40.0


@dataclass
class ContentScoreRecord:
    """Score of one content artifact at one point in time."""

    url: str
    composite_score: float
    subscores: Dict[str, float] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    scored_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "composite_score": self.composite_score,
            "subscores": dict(self.subscores),
            "recommendations": list(self.recommendations),
            "scored_at": self.scored_at.isoformat(),
        }


def normalize_readability(scores: ReadabilityScores) -> Dict[str, float]:
    """Map every readability metric onto the 0-100 ease scale."""
    low, high = FLESCH_EASE_BOUNDS
    normalized = {"flesch_reading_ease": linear_scale(scores.flesch_reading_ease, low, high)}
    for metric in GRADE_EASE_BOUNDS:
        normalized[metric] = grade_to_ease(metric, getattr(scores, metric))
    return normalized


class ContentScorer:
    """
    Deterministic composite scorer.

    Args:
        weights: Component weights for "readability" and "sentiment";
                 must sum to 1.0 (defaults to COMPOSITE_WEIGHTS)
    """

    def __init__(self, weights: Optional[Mapping[str, float]] = None):
        weights = validate_weights(weights if weights is not None else COMPOSITE_WEIGHTS)
        unknown = set(weights) - set(COMPOSITE_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown weight components: {sorted(unknown)}")
        self.weights = weights

    def score(
        self,
        text: str,
        url: str = "",
        scored_at: Optional[datetime] = None,
        page: Optional[PageSignals] = None,
    ) -> ContentScoreRecord:
        """
        Score a plain-text artifact.

        With ``page`` the record also carries the structure, freshness,
        key_content and citations subscores and their recommendations; they
        do not enter the composite.

        Raises:
            EmptyContentError: If the text has no words
        """
        readability = analyze_readability(text)
        if readability.word_count == 0:
            raise EmptyContentError(url=url or None)

        sentiment = analyze_sentiment(text)
        subscores = self.subscores(readability, sentiment)
        composite = round(
            clamp(calculate_weighted_average(subscores, self.weights)),
            2,
        )

        recommendations = self.recommendations(text, readability, sentiment)
        if page is not None:
            page_scores, page_recs = score_page(page, now=scored_at)
            subscores.update(page_scores)
            recommendations.extend(page_recs)

        record = ContentScoreRecord(
            url=url,
            composite_score=composite,
            subscores=subscores,
            recommendations=recommendations,
        )
        if scored_at is not None:
            record.scored_at = scored_at

        logger.debug(f"Scored {url or '<text>'}: composite={composite} words={readability.word_count}")
        return record

    def subscores(self, readability: ReadabilityScores, sentiment: SentimentScores) -> Dict[str, float]:
        eases = normalize_readability(readability)
        readability_ease = sum(eases.values()) / len(eases)

        subscores = {
            "readability": round(readability_ease, 2),
            "sentiment": round(sentiment.favorability, 2),
        }
        for metric, ease in eases.items():
            subscores[f"{metric}_ease"] = round(ease, 2)
        subscores["word_count"] = float(readability.word_count)
        subscores["sentence_count"] = float(readability.sentence_count)
        return subscores

    def recommendations(
        self,
        text: str,
        readability: ReadabilityScores,
        sentiment: SentimentScores,
    ) -> List[str]:
        recs = []

        if readability.flesch_reading_ease < MIN_READING_EASE:
            recs.append("Shorten sentences and use simpler words to improve readability")

        if readability.word_count < MIN_WORD_COUNT:
            recs.append(
                f"Add more substantive content (currently {readability.word_count} words, "
                f"aim for at least {MIN_WORD_COUNT})"
            )

        if sentiment.favorability < MIN_FAVORABILITY:
            recs.append("Review negative framing; AI engines favor balanced, constructive tone")

        lowered = text.lower()
        if not any(phrase in lowered for phrase in CITATION_PHRASES):
            recs.append("Reference authoritative sources to increase citation likelihood")

        return recs
