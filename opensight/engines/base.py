"""
AI Engine Client Base

Common contract for every AI answer engine: one prompt in, one answer text
(with citation URLs) out. Clients make a single attempt per call; retry and
backoff belong to the orchestrator's analysis step.

HTTP failures are classified here:
- timeouts, connection errors and status codes (429, 500, 502, 503, 504)
  raise TransientExternalError (retryable)
- any other 4xx/5xx raises EngineError (not retried)
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..errors import EngineError, TransientExternalError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

_URL_PATTERN = re.compile(r"https?://[^\s<>\"')\]]+")


@dataclass
class EngineQuery:
    """A prompt to send to an engine on behalf of a brand."""

    prompt: str
    brand_name: str
    brand_url: str

    def render(self) -> str:
        """Prompt text with the brand context appended."""
        return f"{self.prompt}\n\nContext: This query is for {self.brand_name} ({self.brand_url})"


@dataclass
class EngineResponse:
    """Answer from an engine."""

    engine: str
    response_text: str
    citation_urls: List[str] = field(default_factory=list)
    raw_response: Any = None
    queried_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def extract_urls(text: str) -> List[str]:
    """De-duplicated http(s) URLs in order of first appearance."""
    urls: List[str] = []
    for match in _URL_PATTERN.findall(text or ""):
        url = match.rstrip(".,;:!?")
        if url not in urls:
            urls.append(url)
    return urls


class EngineClient(ABC):
    """Answer-engine query collaborator."""

    name: str = ""

    @abstractmethod
    async def query(self, query: EngineQuery) -> EngineResponse:
        """Send one prompt and return the answer."""

    async def close(self):
        """Release network resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class HTTPEngineClient(EngineClient):
    """
    Engine client over an httpx.AsyncClient.

    Subclasses set BASE_URL and build their own headers and payloads.
    """

    BASE_URL = ""

    def __init__(
        self,
        headers: Dict[str, str],
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        self._closed = False

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST once and classify the failure, if any."""
        if self._closed:
            raise EngineError("Client has been closed", engine=self.name)

        try:
            response = await self._client.post(endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise TransientExternalError(f"{self.name} request timed out: {e}", service=self.name) from e
        except httpx.RequestError as e:
            raise TransientExternalError(f"{self.name} request failed: {e}", service=self.name) from e

        if response.status_code >= 400:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {"error": response.text}

            if response.status_code in RETRYABLE_STATUS_CODES:
                raise TransientExternalError(
                    f"{self.name} API error: {response.status_code}",
                    service=self.name,
                    status_code=response.status_code,
                )

            raise EngineError(
                f"{self.name} API error: {_error_message(error_data, response.status_code)}",
                engine=self.name,
                status_code=response.status_code,
                response=error_data,
            )

        return response.json()

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True


def _error_message(error_data: Any, status_code: int) -> Any:
    if isinstance(error_data, dict):
        error = error_data.get("error")
        if isinstance(error, dict):
            return error.get("message", status_code)
        if error:
            return error
        if error_data.get("message"):
            return error_data["message"]
    return status_code
