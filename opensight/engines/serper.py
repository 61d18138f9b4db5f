"""
Google AI Overview Engine (via Serper)

Approximates Google's AI answer with the Serper search API: the answer box
snippet when Google shows one, otherwise the top three organic results as
"title: snippet" paragraphs.

API: https://serper.dev
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import EngineQuery, EngineResponse, HTTPEngineClient

logger = logging.getLogger(__name__)

NO_RESULTS = "No results found"
ORGANIC_RESULTS_IN_ANSWER = 3


class GoogleAIOClient(HTTPEngineClient):
    """Async client for the Serper search endpoint."""

    name = "google_aio"
    BASE_URL = "https://google.serper.dev"

    def __init__(
        self,
        api_key: str,
        country: str = "us",
        language: str = "en",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("API key is required for google_aio client")
        self.country = country
        self.language = language
        super().__init__(
            headers={"X-API-KEY": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def query(self, query: EngineQuery) -> EngineResponse:
        payload = {
            "q": f"{query.prompt} {query.brand_name}",
            "gl": self.country,
            "hl": self.language,
        }
        data = await self._post("/search", payload)
        answer, citations = parse_search_response(data)

        return EngineResponse(
            engine=self.name,
            response_text=answer or NO_RESULTS,
            citation_urls=citations,
            raw_response=data,
        )


def parse_search_response(data: Dict[str, Any]):
    """Answer text and de-duplicated citation links from a Serper payload."""
    answer = ""
    citations: List[str] = []

    answer_box = data.get("answerBox") or {}
    if answer_box.get("snippet"):
        answer = answer_box["snippet"]
        for source in answer_box.get("sources") or []:
            if source.get("link"):
                citations.append(source["link"])

    organic = data.get("organic") or []
    if organic:
        if not answer:
            answer = "\n\n".join(
                f"{result.get('title', '')}: {result.get('snippet', '')}"
                for result in organic[:ORGANIC_RESULTS_IN_ANSWER]
            )
        for result in organic:
            if result.get("link"):
                citations.append(result["link"])

    return answer, list(dict.fromkeys(citations))
