"""
Claude Engine

Queries Anthropic's messages API as an answer engine.
"""

import logging
from typing import Optional

import anthropic

from ..errors import EngineError, TransientExternalError
from .base import RETRYABLE_STATUS_CODES, EngineClient, EngineQuery, EngineResponse, extract_urls

logger = logging.getLogger(__name__)


class ClaudeEngineClient(EngineClient):
    """
    Async Claude engine.

    Usage:
        client = ClaudeEngineClient(api_key="sk-ant-...")
        response = await client.query(EngineQuery("Best CRM tools?", "Acme", "https://acme.io"))
    """

    name = "claude"

    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    MAX_TOKENS = 1024
    TEMPERATURE = 0.3

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        """
        Args:
            api_key: Anthropic API key
            model: Model to use (defaults to DEFAULT_MODEL)
            timeout: Request timeout in seconds
            client: Pre-built AsyncAnthropic client (tests)
        """
        if client is None and not api_key:
            raise ValueError("ANTHROPIC_API_KEY not provided")

        self.model = model or self.DEFAULT_MODEL
        self.async_client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
        )

    async def query(self, query: EngineQuery) -> EngineResponse:
        try:
            response = await self.async_client.messages.create(
                model=self.model,
                max_tokens=self.MAX_TOKENS,
                temperature=self.TEMPERATURE,
                messages=[{"role": "user", "content": query.render()}],
            )
        except anthropic.APIConnectionError as e:
            # Includes APITimeoutError
            raise TransientExternalError(f"claude request failed: {e}", service=self.name) from e
        except anthropic.APIStatusError as e:
            if e.status_code in RETRYABLE_STATUS_CODES:
                raise TransientExternalError(
                    f"claude API error: {e.status_code}",
                    service=self.name,
                    status_code=e.status_code,
                ) from e
            raise EngineError(f"claude API error: {e}", engine=self.name, status_code=e.status_code) from e

        content = ""
        for block in response.content:
            if hasattr(block, "text"):
                content += block.text

        logger.info(
            f"Claude call: {response.usage.input_tokens} in, {response.usage.output_tokens} out"
        )

        return EngineResponse(
            engine=self.name,
            response_text=content or "No response received",
            citation_urls=extract_urls(content),
            raw_response=response.model_dump() if hasattr(response, "model_dump") else None,
        )

    async def close(self):
        await self.async_client.close()
