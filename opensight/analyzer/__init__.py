"""
Mention analysis: brand/competitor matching over engine answers.
"""

from .mentions import (
    MatchPolicy,
    MentionMatch,
    extract_competitor_mentions,
    find_mentions,
    match_terms,
    sentence_position,
    split_sentences,
)
from .engine import EngineMentionAnalyzer, build_analysis

__all__ = [
    "MatchPolicy",
    "MentionMatch",
    "extract_competitor_mentions",
    "find_mentions",
    "match_terms",
    "sentence_position",
    "split_sentences",
    "EngineMentionAnalyzer",
    "build_analysis",
]
