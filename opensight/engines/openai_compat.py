"""
OpenAI-Compatible Chat Engines

ChatGPT (OpenAI chat completions) and Perplexity (same wire format at
https://api.perplexity.ai). Both send the rendered prompt as a single user
message and read the first choice.

API: https://platform.openai.com/docs/api-reference/chat
     https://docs.perplexity.ai/
"""

import logging
from typing import Optional

import httpx

from .base import EngineQuery, EngineResponse, HTTPEngineClient, extract_urls

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response received"


class ChatCompletionsClient(HTTPEngineClient):
    """
    Async client for an OpenAI-compatible /chat/completions endpoint.

    Usage:
        client = ChatGPTClient(api_key="sk-...")
        response = await client.query(EngineQuery("Best CRM tools?", "Acme", "https://acme.io"))
        await client.close()
    """

    DEFAULT_MODEL = ""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: API key for the engine
            model: Model to use (defaults to DEFAULT_MODEL)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        if not api_key:
            raise ValueError(f"API key is required for {self.name} client")
        self.model = model or self.DEFAULT_MODEL
        super().__init__(
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def query(self, query: EngineQuery) -> EngineResponse:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": query.render()}],
        }

        data = await self._post("/chat/completions", payload)

        answer = ""
        choices = data.get("choices") or []
        if choices:
            answer = (choices[0].get("message") or {}).get("content") or ""
        answer = answer or NO_RESPONSE

        usage = data.get("usage") or {}
        logger.debug(f"{self.name} answered with {len(answer)} chars, {usage.get('total_tokens', 0)} tokens")

        return EngineResponse(
            engine=self.name,
            response_text=answer,
            citation_urls=extract_urls(answer),
            raw_response=data,
        )


class ChatGPTClient(ChatCompletionsClient):
    name = "chatgpt"
    BASE_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "gpt-4o-mini"


class PerplexityClient(ChatCompletionsClient):
    name = "perplexity"
    BASE_URL = "https://api.perplexity.ai"
    DEFAULT_MODEL = "sonar"
