"""
OpenSight - Data Models

Shared data models used across the pipeline: the tracked entities
(brands, competitors, prompts), the analysis request, and the per
(prompt, engine) observations produced by the mention analyzer.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..utils.domains import normalize_domain


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================


class Industry(str, Enum):
    """Industry a brand or competitor operates in."""
    SAAS = "saas"
    ECOMMERCE = "ecommerce"
    FINANCE = "finance"
    HEALTHCARE = "healthcare"
    OTHER = "other"


class SentimentLabel(str, Enum):
    """Categorical sentiment of a mention."""
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    POSITIVE = "positive"


# =============================================================================
# TRACKED ENTITIES
# =============================================================================


@dataclass
class Brand:
    """A tracked brand."""
    name: str
    domain: str
    industry: Industry = Industry.OTHER
    aliases: List[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.domain = normalize_domain(self.domain)

    @property
    def url(self) -> str:
        return f"https://{self.domain}"


@dataclass
class Competitor:
    """A competitor of a brand (weak reference; may itself be a tracked brand)."""
    brand_id: str
    name: str
    url: str
    industry: Industry = Industry.OTHER
    id: str = field(default_factory=new_id)

    @property
    def domain(self) -> str:
        return normalize_domain(self.url)


@dataclass
class Prompt:
    """A monitoring prompt owned by exactly one brand."""
    brand_id: str
    text: str
    tags: Set[str] = field(default_factory=set)
    is_active: bool = True
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class AnalysisRequest:
    """One domain-analysis submission; identifies one run."""
    domain: str
    email: str
    submitted_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "email": self.email,
            "submitted_at": self.submitted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisRequest":
        submitted_at = data.get("submitted_at")
        return cls(
            domain=data["domain"],
            email=data["email"],
            submitted_at=datetime.fromisoformat(submitted_at) if submitted_at else utcnow(),
        )


# =============================================================================
# OBSERVATIONS
# =============================================================================


@dataclass(frozen=True)
class PromptResultSummary:
    """
    Outcome of one (prompt, engine) pair in one run.

    Immutable once written. When ``mentioned`` is False the sentiment is
    neutral, the compound is 0.0 and the score is 0.
    """
    engine: str
    score: float
    sentiment: SentimentLabel
    mentioned: bool
    sentiment_compound: float = 0.0

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ValueError(f"score must be within 0-100, got {self.score}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine": self.engine,
            "score": self.score,
            "sentiment": self.sentiment.value,
            "mentioned": self.mentioned,
            "sentiment_compound": self.sentiment_compound,
        }


@dataclass(frozen=True)
class CompetitorMention:
    """A competitor found in an engine answer."""
    name: str
    position: int
    sentiment: SentimentLabel
    compound: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "position": self.position,
            "sentiment": self.sentiment.value,
            "compound": self.compound,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompetitorMention":
        return cls(
            name=data["name"],
            position=int(data["position"]),
            sentiment=SentimentLabel(data.get("sentiment", "neutral")),
            compound=float(data.get("compound", 0.0)),
        )


@dataclass
class PromptAnalysis:
    """Summary plus the supplementary details recorded for one pair."""
    prompt_id: str
    summary: PromptResultSummary
    mention_position: Optional[int] = None
    mention_count: int = 0
    citation_urls: List[str] = field(default_factory=list)
    competitor_mentions: List[CompetitorMention] = field(default_factory=list)
    response_text: str = ""
    visibility_score: int = 0
    queried_at: datetime = field(default_factory=utcnow)

    @property
    def engine(self) -> str:
        return self.summary.engine

    @property
    def key(self):
        return (self.prompt_id, self.summary.engine)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_id": self.prompt_id,
            "summary": self.summary.to_dict(),
            "mention_position": self.mention_position,
            "mention_count": self.mention_count,
            "citation_urls": list(self.citation_urls),
            "competitor_mentions": [m.to_dict() for m in self.competitor_mentions],
            "response_text": self.response_text,
            "visibility_score": self.visibility_score,
            "queried_at": self.queried_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptAnalysis":
        s = data["summary"]
        return cls(
            prompt_id=data["prompt_id"],
            summary=PromptResultSummary(
                engine=s["engine"],
                score=float(s["score"]),
                sentiment=SentimentLabel(s["sentiment"]),
                mentioned=bool(s["mentioned"]),
                sentiment_compound=float(s.get("sentiment_compound", 0.0)),
            ),
            mention_position=data.get("mention_position"),
            mention_count=int(data.get("mention_count", 0)),
            citation_urls=list(data.get("citation_urls") or []),
            competitor_mentions=[
                CompetitorMention.from_dict(m) for m in data.get("competitor_mentions") or []
            ],
            response_text=data.get("response_text", ""),
            visibility_score=int(data.get("visibility_score", 0)),
            queried_at=datetime.fromisoformat(data["queried_at"]) if data.get("queried_at") else utcnow(),
        )


@dataclass(frozen=True)
class MissingPair:
    """A (prompt, engine) pair that produced no summary in a run."""
    prompt_id: str
    engine: str
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"prompt_id": self.prompt_id, "engine": self.engine, "error": self.error}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MissingPair":
        return cls(prompt_id=data["prompt_id"], engine=data["engine"], error=data.get("error", ""))
