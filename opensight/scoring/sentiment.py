"""
Sentiment Primitive

Wraps VADER (vaderSentiment) to return polarity proportions and a
compound value for a text blob. VADER is lexicon-based, so the result is
deterministic and needs no network access.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict

from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

from .helpers import clamp, compound_to_score, sentiment_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentimentScores:
    """VADER polarity: negative + neutral + positive ~= 1.0, compound in [-1, 1]."""

    negative: float = 0.0
    neutral: float = 1.0
    positive: float = 0.0
    compound: float = 0.0

    @property
    def label(self) -> str:
        return sentiment_label(self.compound)

    @property
    def favorability(self) -> float:
        """Compound mapped onto 0-100."""
        return compound_to_score(self.compound)

    def to_dict(self) -> Dict[str, float]:
        return {
            "negative": self.negative,
            "neutral": self.neutral,
            "positive": self.positive,
            "compound": self.compound,
        }


NEUTRAL = SentimentScores()


@lru_cache(maxsize=1)
def _analyzer() -> SentimentIntensityAnalyzer:
    # Loading the lexicon is the expensive part; share one instance
    return SentimentIntensityAnalyzer()


def analyze_sentiment(text: str) -> SentimentScores:
    """
    Score the sentiment of a text.

    Args:
        text: Any text, possibly empty

    Returns:
        SentimentScores; empty or whitespace-only text is fully neutral
    """
    if not text or not text.strip():
        return NEUTRAL

    scores = _analyzer().polarity_scores(text)
    negative = clamp(scores.get("neg", 0.0), 0.0, 1.0)
    neutral = clamp(scores.get("neu", 0.0), 0.0, 1.0)
    positive = clamp(scores.get("pos", 0.0), 0.0, 1.0)

    # VADER returns all zeros for text with no scorable tokens
    if negative + neutral + positive == 0:
        return NEUTRAL

    return SentimentScores(
        negative=negative,
        neutral=neutral,
        positive=positive,
        compound=clamp(scores.get("compound", 0.0), -1.0, 1.0),
    )
