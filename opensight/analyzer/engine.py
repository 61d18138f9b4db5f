"""
Engine Mention Analyzer

For one (brand, prompt, engine) triple: query the engine, find the brand in
the answer, and score the mention.

- mentioned: brand found under the configured MatchPolicy
- sentiment/score: VADER over the sentences holding the mentions, compound
  mapped onto 0-100
- not mentioned: score 0, neutral, compound 0.0

Engine failures propagate as TransientExternalError (timeouts, 5xx, 429)
or EngineError (everything else) for the caller to retry or skip; a
failure here never affects other pairs.
"""

import asyncio
import logging
from typing import Mapping, Optional, Sequence

from ..errors import EngineError, TransientExternalError
from ..engines.base import EngineClient, EngineQuery, EngineResponse
from ..models import (
    Brand,
    Competitor,
    Prompt,
    PromptAnalysis,
    PromptResultSummary,
    SentimentLabel,
)
from ..scoring.helpers import compound_to_score
from ..scoring.sentiment import analyze_sentiment
from ..scoring.visibility import visibility_score
from .mentions import MatchPolicy, extract_competitor_mentions, find_mentions

logger = logging.getLogger(__name__)


def build_analysis(
    prompt_id: str,
    response: EngineResponse,
    brand: Brand,
    competitors: Sequence[Competitor] = (),
    policy: MatchPolicy = MatchPolicy.ALIAS,
    engine: Optional[str] = None,
) -> PromptAnalysis:
    """
    Turn an engine answer into a PromptAnalysis. Pure and deterministic.

    Args:
        prompt_id: Prompt the answer belongs to
        response: Engine answer
        brand: Brand to look for
        competitors: Competitors to look for
        policy: Mention matching policy
        engine: Engine id to record (defaults to response.engine)
    """
    engine = engine or response.engine
    text = response.response_text or ""

    match = find_mentions(text, brand.name, brand.domain, policy, aliases=brand.aliases)
    competitor_mentions = extract_competitor_mentions(text, competitors, policy)

    if match.mentioned:
        sentiment = analyze_sentiment(match.context)
        compound = sentiment.compound
        summary = PromptResultSummary(
            engine=engine,
            score=round(compound_to_score(compound), 2),
            sentiment=SentimentLabel(sentiment.label),
            mentioned=True,
            sentiment_compound=compound,
        )
    else:
        compound = 0.0
        summary = PromptResultSummary(
            engine=engine,
            score=0.0,
            sentiment=SentimentLabel.NEUTRAL,
            mentioned=False,
            sentiment_compound=0.0,
        )

    return PromptAnalysis(
        prompt_id=prompt_id,
        summary=summary,
        mention_position=match.position,
        mention_count=match.count,
        citation_urls=list(response.citation_urls),
        competitor_mentions=competitor_mentions,
        response_text=text,
        visibility_score=visibility_score(
            mentioned=match.mentioned,
            position=match.position,
            compound=compound,
            citation_count=len(response.citation_urls),
            competitor_count=len(competitor_mentions),
        ),
        queried_at=response.queried_at,
    )


class EngineMentionAnalyzer:
    """
    Analyzes one prompt against one engine.

    Usage:
        analyzer = EngineMentionAnalyzer({"chatgpt": ChatGPTClient(key)})
        analysis = await analyzer.analyze(prompt, "chatgpt", brand, competitors)
    """

    def __init__(
        self,
        engines: Mapping[str, EngineClient],
        policy: MatchPolicy = MatchPolicy.ALIAS,
        timeout: float = 60.0,
    ):
        """
        Args:
            engines: Engine id -> client
            policy: Mention matching policy
            timeout: Per-call timeout in seconds
        """
        self.engines = dict(engines)
        self.policy = MatchPolicy(policy)
        self.timeout = timeout

    @property
    def engine_names(self):
        return list(self.engines)

    async def query(self, prompt: Prompt, engine: str, brand: Brand) -> EngineResponse:
        """Query one engine with a timeout; exceeding it is a transient failure."""
        client = self.engines.get(engine)
        if client is None:
            raise EngineError(f"Engine not configured: {engine}", engine=engine)

        try:
            return await asyncio.wait_for(
                client.query(EngineQuery(prompt=prompt.text, brand_name=brand.name, brand_url=brand.url)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransientExternalError(
                f"{engine} timed out after {self.timeout:.1f}s",
                service=engine,
            ) from e

    async def analyze(
        self,
        prompt: Prompt,
        engine: str,
        brand: Brand,
        competitors: Sequence[Competitor] = (),
    ) -> PromptAnalysis:
        response = await self.query(prompt, engine, brand)
        analysis = build_analysis(prompt.id, response, brand, competitors, self.policy, engine=engine)

        logger.debug(
            f"Prompt {prompt.id} on {engine}: mentioned={analysis.summary.mentioned} "
            f"score={analysis.summary.score} position={analysis.mention_position}"
        )
        return analysis

    async def close(self):
        for client in self.engines.values():
            await client.close()
