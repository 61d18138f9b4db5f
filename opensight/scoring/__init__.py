"""
Scoring Module for OpenSight

1. **Readability primitives**
   Flesch, Flesch-Kincaid, Gunning Fog, Coleman-Liau, ARI, SMOG.

2. **Sentiment primitive** (VADER)
   negative/neutral/positive proportions plus a compound value in [-1, 1].

3. **Content Score** (0-100)
   Weighted average of normalized readability ease and sentiment favorability.
   Pages scraped with markup also get informational structure, freshness,
   key content and citation subscores.

4. **Visibility Score** (0-100)
   Informational per-answer score for one engine response.

Example Usage:
    from opensight.scoring import ContentScorer, analyze_sentiment

    record = ContentScorer().score(text, url="https://example.com/post")
    print(f"Composite: {record.composite_score}")
"""

from .helpers import (
    POSITIVE_THRESHOLD,
    NEGATIVE_THRESHOLD,
    GRADE_EASE_BOUNDS,
    clamp,
    linear_scale,
    grade_to_ease,
    compound_to_score,
    sentiment_label,
    validate_weights,
    round_half_up,
    mean,
    calculate_weighted_average,
)
from .readability import (
    ReadabilityScores,
    TextStatistics,
    analyze_readability,
    automated_readability_index,
    coleman_liau,
    count_syllables,
    flesch_kincaid_grade,
    flesch_reading_ease,
    gunning_fog,
    smog,
    text_statistics,
)
from .sentiment import SentimentScores, analyze_sentiment
from .page import PageSignals, extract_signals, score_page
from .content import COMPOSITE_WEIGHTS, ContentScoreRecord, ContentScorer, normalize_readability
from .visibility import visibility_score

__all__ = [
    # Helpers
    "POSITIVE_THRESHOLD",
    "NEGATIVE_THRESHOLD",
    "GRADE_EASE_BOUNDS",
    "clamp",
    "linear_scale",
    "grade_to_ease",
    "compound_to_score",
    "sentiment_label",
    "validate_weights",
    "round_half_up",
    "mean",
    "calculate_weighted_average",
    # Readability
    "ReadabilityScores",
    "TextStatistics",
    "analyze_readability",
    "automated_readability_index",
    "coleman_liau",
    "count_syllables",
    "flesch_kincaid_grade",
    "flesch_reading_ease",
    "gunning_fog",
    "smog",
    "text_statistics",
    # Sentiment
    "SentimentScores",
    "analyze_sentiment",
    # Content
    "COMPOSITE_WEIGHTS",
    "ContentScoreRecord",
    "ContentScorer",
    "normalize_readability",
    # Page signals
    "PageSignals",
    "extract_signals",
    "score_page",
    # Visibility
    "visibility_score",
]
