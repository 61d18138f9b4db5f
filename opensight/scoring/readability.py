"""
Readability Primitives

Pure, stateless readability formulas over a text string:

- Flesch Reading Ease (0-100 native, higher = easier)
- Flesch-Kincaid Grade Level
- Gunning Fog Index
- Coleman-Liau Index
- Automated Readability Index (ARI)
- SMOG Index

Every formula divides by word or sentence counts guarded with a minimum of
one, so very short or non-English text degrades to a finite number instead
of raising. Empty or whitespace-only text returns 0.0 for every metric.

Usage:
    from opensight.scoring.readability import analyze_readability

    scores = analyze_readability(text)
    scores.flesch_kincaid_grade  # 8.4
    scores.to_dict()
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List


# Words whose vowel-group count is misleading
SYLLABLE_EXCEPTIONS = {
    "area": 3, "idea": 3, "real": 2, "ruin": 2, "science": 2,
    "create": 2, "creature": 2, "feature": 2, "measure": 2,
    "employee": 3, "every": 3, "evening": 3, "everything": 4,
    "business": 2, "different": 3, "family": 3, "interest": 3,
    "favorite": 3, "separate": 3, "comfortable": 4, "temperature": 4,
}

_VOWELS = "aeiouy"
_WORD_PATTERN = re.compile(r"[^\W_]+(?:['’-][^\W_]+)*", re.UNICODE)
_SENTENCE_SPLIT = re.compile(r"[.!?]+|\n{2,}")


@dataclass
class TextStatistics:
    """Counts every formula is built from."""

    word_count: int = 0
    sentence_count: int = 0
    syllable_count: int = 0
    letter_count: int = 0
    complex_word_count: int = 0

    @property
    def words(self) -> int:
        return max(1, self.word_count)

    @property
    def sentences(self) -> int:
        return max(1, self.sentence_count)


@dataclass
class ReadabilityScores:
    """All readability metrics for one text, each on its native scale."""

    flesch_reading_ease: float = 0.0
    flesch_kincaid_grade: float = 0.0
    gunning_fog: float = 0.0
    coleman_liau: float = 0.0
    automated_readability_index: float = 0.0
    smog: float = 0.0
    word_count: int = 0
    sentence_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return self.__dict__.copy()


# ============================================================================
# TOKENIZATION
# ============================================================================


def tokenize_words(text: str) -> List[str]:
    """Words are runs of letters/digits, allowing inner apostrophes and hyphens."""
    if not text:
        return []
    return _WORD_PATTERN.findall(text)


def tokenize_sentences(text: str) -> List[str]:
    """Sentences are segments between terminal punctuation that contain a word."""
    if not text:
        return []
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if _WORD_PATTERN.search(s)]


def count_syllables(word: str) -> int:
    """
    Estimate syllables with English vowel-group rules.

    Words without Latin vowels (numbers, other scripts) count as one syllable.
    """
    word = word.lower().strip("'’-")
    if not word:
        return 0

    if word in SYLLABLE_EXCEPTIONS:
        return SYLLABLE_EXCEPTIONS[word]

    count = 0
    prev_is_vowel = False
    for char in word:
        is_vowel = char in _VOWELS
        if is_vowel and not prev_is_vowel:
            count += 1
        prev_is_vowel = is_vowel

    # Silent trailing e, but not -le
    if word.endswith("e") and not word.endswith("le") and count > 1:
        count -= 1

    if word.endswith("ed") and not word.endswith(("ted", "ded")) and count > 1:
        count -= 1

    if word.endswith("es") and not word.endswith(("ses", "xes", "zes", "ches", "shes")) and count > 1:
        count -= 1

    return max(1, count)


def is_complex_word(word: str) -> bool:
    """Complex = 3+ syllables, not counting inflections that only add a suffix."""
    syllables = count_syllables(word)
    if syllables < 3:
        return False

    lowered = word.lower()
    for suffix in ("ing", "ed", "es"):
        if lowered.endswith(suffix) and count_syllables(lowered[: -len(suffix)]) < 3:
            return False
    return True


def text_statistics(text: str) -> TextStatistics:
    """Collect word/sentence/syllable/letter counts for a text."""
    words = tokenize_words(text or "")
    if not words:
        return TextStatistics()

    sentences = tokenize_sentences(text)
    return TextStatistics(
        word_count=len(words),
        sentence_count=max(1, len(sentences)),
        syllable_count=sum(count_syllables(w) for w in words),
        letter_count=sum(1 for w in words for ch in w if ch.isalnum()),
        complex_word_count=sum(1 for w in words if is_complex_word(w)),
    )


# ============================================================================
# FORMULAS (over precomputed statistics)
# ============================================================================


def _flesch_reading_ease(stats: TextStatistics) -> float:
    if not stats.word_count:
        return 0.0
    return 206.835 - 1.015 * (stats.words / stats.sentences) - 84.6 * (stats.syllable_count / stats.words)


def _flesch_kincaid_grade(stats: TextStatistics) -> float:
    if not stats.word_count:
        return 0.0
    return 0.39 * (stats.words / stats.sentences) + 11.8 * (stats.syllable_count / stats.words) - 15.59


def _gunning_fog(stats: TextStatistics) -> float:
    if not stats.word_count:
        return 0.0
    return 0.4 * ((stats.words / stats.sentences) + 100 * (stats.complex_word_count / stats.words))


def _coleman_liau(stats: TextStatistics) -> float:
    if not stats.word_count:
        return 0.0
    letters_per_100 = stats.letter_count / stats.words * 100
    sentences_per_100 = stats.sentences / stats.words * 100
    return 0.0588 * letters_per_100 - 0.296 * sentences_per_100 - 15.8


def _automated_readability_index(stats: TextStatistics) -> float:
    if not stats.word_count:
        return 0.0
    return 4.71 * (stats.letter_count / stats.words) + 0.5 * (stats.words / stats.sentences) - 21.43


def _smog(stats: TextStatistics) -> float:
    # Scaled to a 30-sentence sample, so short texts still get a value
    if not stats.word_count:
        return 0.0
    return 1.043 * math.sqrt(stats.complex_word_count * (30 / stats.sentences)) + 3.1291


def _finite(value: float) -> float:
    return round(value, 4) if math.isfinite(value) else 0.0


# ============================================================================
# PUBLIC API
# ============================================================================


def flesch_reading_ease(text: str) -> float:
    return _finite(_flesch_reading_ease(text_statistics(text)))


def flesch_kincaid_grade(text: str) -> float:
    return _finite(_flesch_kincaid_grade(text_statistics(text)))


def gunning_fog(text: str) -> float:
    return _finite(_gunning_fog(text_statistics(text)))


def coleman_liau(text: str) -> float:
    return _finite(_coleman_liau(text_statistics(text)))


def automated_readability_index(text: str) -> float:
    return _finite(_automated_readability_index(text_statistics(text)))


def smog(text: str) -> float:
    return _finite(_smog(text_statistics(text)))


def analyze_readability(text: str) -> ReadabilityScores:
    """
    Compute every readability metric for a text in one pass.

    Args:
        text: Plain text (may be empty)

    Returns:
        ReadabilityScores; all zeros for empty or whitespace-only text
    """
    stats = text_statistics(text)
    if not stats.word_count:
        return ReadabilityScores()

    return ReadabilityScores(
        flesch_reading_ease=_finite(_flesch_reading_ease(stats)),
        flesch_kincaid_grade=_finite(_flesch_kincaid_grade(stats)),
        gunning_fog=_finite(_gunning_fog(stats)),
        coleman_liau=_finite(_coleman_liau(stats)),
        automated_readability_index=_finite(_automated_readability_index(stats)),
        smog=_finite(_smog(stats)),
        word_count=stats.word_count,
        sentence_count=stats.sentence_count,
    )
