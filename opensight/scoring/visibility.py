"""
Visibility Score

Informational 0-100 score for one engine answer, summarizing how well the
brand showed up: presence, how early, tone, citations and crowding.
"""

from typing import Optional

from .helpers import POSITIVE_THRESHOLD

MENTION_POINTS = 40
MAX_POSITION_POINTS = 20
POSITION_STEP = 2
POSITIVE_POINTS = 15
CITATION_POINTS = 15
LOW_COMPETITION_POINTS = 10
LOW_COMPETITION_LIMIT = 3


def visibility_score(
    mentioned: bool,
    position: Optional[int],
    compound: float,
    citation_count: int,
    competitor_count: int,
) -> int:
    """
    Args:
        mentioned: Brand found in the answer
        position: 1-based sentence index of the first mention
        compound: Sentiment compound of the mention context
        citation_count: Number of citation URLs in the answer
        competitor_count: Number of competitors mentioned in the answer

    Returns:
        Score between 0 and 100
    """
    score = 0

    if mentioned:
        score += MENTION_POINTS
        if position is not None and position >= 1:
            score += max(0, MAX_POSITION_POINTS - (position - 1) * POSITION_STEP)

    if compound > POSITIVE_THRESHOLD:
        score += POSITIVE_POINTS

    if citation_count > 0:
        score += CITATION_POINTS

    if competitor_count < LOW_COMPETITION_LIMIT:
        score += LOW_COMPETITION_POINTS

    return min(score, 100)
