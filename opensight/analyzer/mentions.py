"""
Mention Extraction

Finds occurrences of a brand (name, domain, aliases) in engine answer text.

Two matching policies:
- substring: case-insensitive substring search for the name and the domain;
  the count is name hits plus domain hits.
- alias: also matches the domain label ("acme" for "acme.io") and any
  caller-provided aliases, on word boundaries; overlapping hits from
  different terms count once.

Positions are 1-based sentence indexes, where sentences are separated by
".", "!", "?" or a newline.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from ..models import Competitor, CompetitorMention, SentimentLabel
from ..scoring.sentiment import analyze_sentiment
from ..utils.domains import domain_label, normalize_domain

SENTENCE_SEPARATORS = re.compile(r"[.!?\n]+")
_BOUNDARY = re.compile(r"[.!?\n]")

MIN_ALIAS_LENGTH = 2


class MatchPolicy(str, Enum):
    SUBSTRING = "substring"
    ALIAS = "alias"


@dataclass
class MentionMatch:
    """Where and how often a brand appears in a text."""
    mentioned: bool = False
    position: Optional[int] = None
    count: int = 0
    contexts: List[str] = field(default_factory=list)

    @property
    def context(self) -> str:
        """Sentences containing a mention, joined."""
        return " ".join(self.contexts)


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in SENTENCE_SEPARATORS.split(text or "") if s.strip()]


def sentence_position(text: str, index: int) -> int:
    """1-based sentence index of the character at ``index``."""
    return len(SENTENCE_SEPARATORS.split(text[:index]))


def sentence_around(text: str, start: int, end: int) -> str:
    """The sentence containing text[start:end], keeping dots inside the match."""
    left = start
    while left > 0 and not _BOUNDARY.match(text[left - 1]):
        left -= 1
    right = end
    while right < len(text) and not _BOUNDARY.match(text[right]):
        right += 1
    return text[left:right].strip()


def _substring_spans(lowered: str, term: str) -> List[Tuple[int, int]]:
    spans = []
    index = lowered.find(term)
    while index != -1:
        spans.append((index, index + len(term)))
        index = lowered.find(term, index + len(term))
    return spans


def _word_spans(lowered: str, term: str) -> List[Tuple[int, int]]:
    pattern = re.compile(r"(?<!\w)" + re.escape(term) + r"(?!\w)")
    return [(m.start(), m.end()) for m in pattern.finditer(lowered)]


def _merge_overlaps(spans: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
    merged: List[Tuple[int, int]] = []
    for start, end in sorted(spans):
        if merged and start < merged[-1][1]:
            merged[-1] = (merged[-1][0], max(end, merged[-1][1]))
        else:
            merged.append((start, end))
    return merged


def match_terms(name: str, url: str, policy: MatchPolicy, aliases: Iterable[str] = ()) -> List[str]:
    """Lower-cased search terms for a brand under a policy."""
    terms = []
    domain = normalize_domain(url) or (url or "").strip().lower()

    candidates = [name, domain]
    if policy == MatchPolicy.ALIAS:
        candidates.append(domain_label(domain))
        candidates.extend(aliases)

    for term in candidates:
        term = (term or "").strip().lower()
        if not term or term in terms:
            continue
        if policy == MatchPolicy.ALIAS and len(term) < MIN_ALIAS_LENGTH:
            continue
        terms.append(term)
    return terms


def find_mentions(
    text: str,
    name: str,
    url: str,
    policy: MatchPolicy = MatchPolicy.ALIAS,
    aliases: Sequence[str] = (),
) -> MentionMatch:
    """
    Locate a brand in a text.

    Args:
        text: Answer text
        name: Brand display name
        url: Brand URL or bare domain
        policy: Matching policy
        aliases: Extra names (alias policy only)

    Returns:
        MentionMatch (not mentioned for empty text)
    """
    if not text or not text.strip():
        return MentionMatch()

    lowered = text.lower()
    terms = match_terms(name, url, policy, aliases)

    if policy == MatchPolicy.SUBSTRING:
        spans = [span for term in terms for span in _substring_spans(lowered, term)]
        count = len(spans)
    else:
        spans = _merge_overlaps([span for term in terms for span in _word_spans(lowered, term)])
        count = len(spans)

    if not spans:
        return MentionMatch()

    spans.sort()
    contexts: List[str] = []
    for start, end in spans:
        sentence = sentence_around(text, start, end)
        if sentence and sentence not in contexts:
            contexts.append(sentence)

    return MentionMatch(
        mentioned=True,
        position=sentence_position(text, spans[0][0]),
        count=count,
        contexts=contexts,
    )


def extract_competitor_mentions(
    text: str,
    competitors: Sequence[Competitor],
    policy: MatchPolicy = MatchPolicy.ALIAS,
) -> List[CompetitorMention]:
    """
    Find every competitor mentioned in a text.

    Sentiment comes from the sentence holding the competitor's first mention.
    """
    mentions: List[CompetitorMention] = []
    if not text or not text.strip() or not competitors:
        return mentions

    for competitor in competitors:
        match = find_mentions(text, competitor.name, competitor.url, policy)
        if not match.mentioned:
            continue

        sentiment = analyze_sentiment(match.contexts[0] if match.contexts else "")
        mentions.append(
            CompetitorMention(
                name=competitor.name,
                position=match.position,
                sentiment=SentimentLabel(sentiment.label),
                compound=sentiment.compound,
            )
        )

    return mentions
