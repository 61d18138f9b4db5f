"""
AI Engine Clients

Usage:
    from opensight.engines import create_engine_client

    client = create_engine_client("perplexity", settings)
    response = await client.query(EngineQuery(prompt, brand.name, brand.url))
"""

from typing import Dict, List, TYPE_CHECKING

from .base import (
    RETRYABLE_STATUS_CODES,
    EngineClient,
    EngineQuery,
    EngineResponse,
    HTTPEngineClient,
    extract_urls,
)
from .claude import ClaudeEngineClient
from .openai_compat import ChatCompletionsClient, ChatGPTClient, PerplexityClient
from .serper import GoogleAIOClient, parse_search_response

if TYPE_CHECKING:
    from ..utils.config import Settings


# engine id -> (client class, settings attribute holding its key)
ENGINE_REGISTRY = {
    "chatgpt": (ChatGPTClient, "OPENAI_API_KEY"),
    "perplexity": (PerplexityClient, "PERPLEXITY_API_KEY"),
    "google_aio": (GoogleAIOClient, "SERPER_API_KEY"),
    "claude": (ClaudeEngineClient, "ANTHROPIC_API_KEY"),
}

ENGINE_ALIASES = {"google": "google_aio", "openai": "chatgpt"}


def resolve_engine_name(name: str) -> str:
    key = (name or "").strip().lower()
    return ENGINE_ALIASES.get(key, key)


def create_engine_client(name: str, settings: "Settings") -> EngineClient:
    """
    Build an engine client from settings.

    Raises:
        ValueError: Unknown engine, or its API key is not configured
    """
    engine = resolve_engine_name(name)
    if engine not in ENGINE_REGISTRY:
        raise ValueError(f"Unknown engine: {name}")

    client_class, key_name = ENGINE_REGISTRY[engine]
    api_key = getattr(settings, key_name, None)
    if not api_key:
        raise ValueError(f"{key_name} is required for {engine} client")

    if engine == "claude":
        return client_class(api_key=api_key, model=settings.CLAUDE_MODEL, timeout=settings.ENGINE_TIMEOUT)
    return client_class(api_key=api_key, timeout=settings.ENGINE_TIMEOUT)


def create_engine_clients(settings: "Settings") -> Dict[str, EngineClient]:
    """Clients for every engine in settings.ENGINES, keyed by engine id (aliases collapse)."""
    names = list(dict.fromkeys(resolve_engine_name(name) for name in settings.engine_list))
    return {name: create_engine_client(name, settings) for name in names}


def available_engines() -> List[str]:
    return list(ENGINE_REGISTRY)


__all__ = [
    "RETRYABLE_STATUS_CODES",
    "EngineClient",
    "EngineQuery",
    "EngineResponse",
    "HTTPEngineClient",
    "extract_urls",
    "ChatCompletionsClient",
    "ChatGPTClient",
    "PerplexityClient",
    "GoogleAIOClient",
    "parse_search_response",
    "ClaudeEngineClient",
    "ENGINE_REGISTRY",
    "create_engine_client",
    "create_engine_clients",
    "resolve_engine_name",
    "available_engines",
]
