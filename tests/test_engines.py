"""
Test Suite: Engine Clients and Content Extraction

HTTP clients are exercised against httpx.MockTransport; the Claude client
gets a mocked AsyncAnthropic.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from opensight.engines import (
    ChatGPTClient,
    ClaudeEngineClient,
    EngineQuery,
    GoogleAIOClient,
    PerplexityClient,
    available_engines,
    create_engine_client,
    create_engine_clients,
    extract_urls,
    parse_search_response,
    resolve_engine_name,
)
from opensight.errors import EngineError, ExtractionError, TransientExternalError
from opensight.extraction import FirecrawlExtractor, markdown_to_text
from opensight.utils.config import Settings

QUERY = EngineQuery(prompt="Best CRM tools?", brand_name="Acme", brand_url="https://acme.io")


def chat_handler(captured: list, status: int = 200, content: str = "Acme is great. See https://acme.io/docs."):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        if status != 200:
            return httpx.Response(status, json={"error": {"message": "bad key"}})
        return httpx.Response(200, json={
            "choices": [{"message": {"content": content}}],
            "usage": {"total_tokens": 42},
        })
    return handler


def make_settings(**overrides) -> Settings:
    values = {
        "OPENAI_API_KEY": None,
        "PERPLEXITY_API_KEY": None,
        "SERPER_API_KEY": None,
        "ANTHROPIC_API_KEY": None,
        "ENGINES": "chatgpt,perplexity",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestEngineQuery:

    def test_render_appends_brand_context(self):
        assert QUERY.render() == "Best CRM tools?\n\nContext: This query is for Acme (https://acme.io)"

    def test_extract_urls(self):
        text = "See https://a.com/x, then http://b.org. Again https://a.com/x!"
        assert extract_urls(text) == ["https://a.com/x", "http://b.org"]


class TestChatCompletionsClients:
    """ChatGPT and Perplexity over one wire format."""

    @pytest.mark.asyncio
    async def test_chatgpt_query(self):
        captured = []
        client = ChatGPTClient("sk-test", transport=httpx.MockTransport(chat_handler(captured)))

        response = await client.query(QUERY)
        await client.close()

        request = captured[0]
        body = json.loads(request.content)
        assert request.url == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"][0]["content"] == QUERY.render()
        assert response.engine == "chatgpt"
        assert response.response_text.startswith("Acme is great")
        assert response.citation_urls == ["https://acme.io/docs"]

    @pytest.mark.asyncio
    async def test_perplexity_base_url_and_model(self):
        captured = []
        client = PerplexityClient("pplx-test", transport=httpx.MockTransport(chat_handler(captured)))
        response = await client.query(QUERY)
        await client.close()

        assert captured[0].url == "https://api.perplexity.ai/chat/completions"
        assert json.loads(captured[0].content)["model"] == "sonar"
        assert response.engine == "perplexity"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    async def test_retryable_status_is_transient(self, status):
        client = ChatGPTClient("sk-test", transport=httpx.MockTransport(chat_handler([], status=status)))
        with pytest.raises(TransientExternalError) as exc:
            await client.query(QUERY)
        await client.close()
        assert exc.value.status_code == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403])
    async def test_client_errors_are_permanent(self, status):
        client = ChatGPTClient("sk-test", transport=httpx.MockTransport(chat_handler([], status=status)))
        with pytest.raises(EngineError) as exc:
            await client.query(QUERY)
        await client.close()
        assert exc.value.status_code == status
        assert "bad key" in str(exc.value)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = ChatGPTClient("sk-test", transport=httpx.MockTransport(handler))
        with pytest.raises(TransientExternalError):
            await client.query(QUERY)
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        client = ChatGPTClient("sk-test", transport=httpx.MockTransport(handler))
        response = await client.query(QUERY)
        await client.close()
        assert response.response_text == "No response received"

    @pytest.mark.asyncio
    async def test_closed_client_refuses(self):
        client = ChatGPTClient("sk-test", transport=httpx.MockTransport(chat_handler([])))
        await client.close()
        with pytest.raises(EngineError):
            await client.query(QUERY)

    def test_missing_key(self):
        with pytest.raises(ValueError):
            ChatGPTClient("")


class TestGoogleAIO:
    """Serper-backed engine."""

    def test_answer_box_preferred(self):
        answer, citations = parse_search_response({
            "answerBox": {"snippet": "Acme leads the market.", "sources": [{"link": "https://a.com"}]},
            "organic": [{"title": "T", "snippet": "S", "link": "https://a.com"}, {"link": "https://b.com"}],
        })
        assert answer == "Acme leads the market."
        assert citations == ["https://a.com", "https://b.com"]

    def test_organic_fallback_uses_top_three(self):
        organic = [{"title": f"T{i}", "snippet": f"S{i}", "link": f"https://{i}.com"} for i in range(5)]
        answer, citations = parse_search_response({"organic": organic})
        assert answer == "T0: S0\n\nT1: S1\n\nT2: S2"
        assert len(citations) == 5

    @pytest.mark.asyncio
    async def test_query(self):
        captured = []

        def handler(request):
            captured.append(request)
            return httpx.Response(200, json={})

        client = GoogleAIOClient("serper-key", transport=httpx.MockTransport(handler))
        response = await client.query(QUERY)
        await client.close()

        body = json.loads(captured[0].content)
        assert captured[0].headers["X-API-KEY"] == "serper-key"
        assert body["q"] == "Best CRM tools? Acme"
        assert response.response_text == "No results found"
        assert response.citation_urls == []


class TestClaudeEngine:
    """Anthropic messages API."""

    def _client(self, create):
        mock = MagicMock()
        mock.messages.create = create
        mock.close = AsyncMock()
        return ClaudeEngineClient(client=mock)

    @pytest.mark.asyncio
    async def test_query(self):
        create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(text="Acme is solid. https://acme.io")],
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        ))
        client = self._client(create)

        response = await client.query(QUERY)

        assert response.engine == "claude"
        assert response.citation_urls == ["https://acme.io"]
        assert create.await_args.kwargs["messages"][0]["content"] == QUERY.render()

    @pytest.mark.asyncio
    async def test_rate_limit_is_transient(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        error = anthropic.RateLimitError("slow down", response=httpx.Response(429, request=request), body=None)
        client = self._client(AsyncMock(side_effect=error))
        with pytest.raises(TransientExternalError):
            await client.query(QUERY)

    @pytest.mark.asyncio
    async def test_auth_error_is_permanent(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        error = anthropic.AuthenticationError("bad key", response=httpx.Response(401, request=request), body=None)
        client = self._client(AsyncMock(side_effect=error))
        with pytest.raises(EngineError):
            await client.query(QUERY)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client = self._client(AsyncMock(side_effect=anthropic.APIConnectionError(request=request)))
        with pytest.raises(TransientExternalError):
            await client.query(QUERY)


class TestEngineFactory:
    """create_engine_client and friends."""

    def test_aliases(self):
        assert resolve_engine_name("Google") == "google_aio"
        assert resolve_engine_name("openai") == "chatgpt"
        assert set(available_engines()) == {"chatgpt", "perplexity", "google_aio", "claude"}

    def test_unknown_engine(self):
        with pytest.raises(ValueError, match="Unknown engine"):
            create_engine_client("bing", make_settings())

    def test_missing_key_names_variable(self):
        with pytest.raises(ValueError, match="PERPLEXITY_API_KEY"):
            create_engine_client("perplexity", make_settings())

    def test_clients_from_settings(self):
        settings = make_settings(OPENAI_API_KEY="sk", SERPER_API_KEY="sp", ENGINES="openai, google, chatgpt")
        clients = create_engine_clients(settings)
        assert list(clients) == ["chatgpt", "google_aio"]
        assert isinstance(clients["chatgpt"], ChatGPTClient)
        assert isinstance(clients["google_aio"], GoogleAIOClient)


class TestFirecrawl:
    """Content extraction collaborator."""

    def test_markdown_to_text(self):
        markdown = (
            "# Title\n\n"
            "Some **bold** and _italic_ text with a [link](https://x.com).\n\n"
            "![img](https://x.com/a.png)\n\n"
            "```python\nprint('hi')\n```\n\n"
            "- item one\n- item two\n"
        )
        text = markdown_to_text(markdown)
        assert "Title" in text
        assert "#" not in text
        assert "Some bold and italic text with a link." in text
        assert "img" not in text
        assert "print" not in text
        assert "item one" in text and "- item" not in text

    def test_empty_markdown(self):
        assert markdown_to_text("") == ""

    @pytest.mark.asyncio
    async def test_extract(self):
        captured = []

        def handler(request):
            captured.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "data": {"markdown": "## Hello\n\nWorld **text**."}})

        extractor = FirecrawlExtractor("fc-key", transport=httpx.MockTransport(handler))
        text = await extractor.extract("https://example.com/post")
        await extractor.close()

        assert captured[0] == {"url": "https://example.com/post", "formats": ["markdown", "rawHtml"], "onlyMainContent": True}
        assert text == "Hello\n\nWorld text."

    @pytest.mark.asyncio
    async def test_extract_page_keeps_markup(self):
        data = {
            "markdown": "# Hello\n\nWorld.",
            "rawHtml": "<html><body><h1>Hello</h1><p>World.</p></body></html>",
            "metadata": {"title": "Hello", "article:modified_time": "2024-05-01T00:00:00Z"},
        }
        extractor = FirecrawlExtractor(
            "fc-key",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"success": True, "data": data})),
        )
        page = await extractor.extract_page("https://example.com/post")
        await extractor.close()

        assert page.url == "https://example.com/post"
        assert page.text == "Hello\n\nWorld."
        assert page.markdown == data["markdown"]
        assert page.raw_html == data["rawHtml"]
        assert page.metadata["title"] == "Hello"

    @pytest.mark.asyncio
    async def test_unsuccessful_scrape(self):
        extractor = FirecrawlExtractor(
            "fc-key",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"success": False, "error": "blocked"})),
        )
        with pytest.raises(ExtractionError, match="blocked"):
            await extractor.extract("https://example.com")
        await extractor.close()

    @pytest.mark.asyncio
    async def test_status_classification(self):
        transient = FirecrawlExtractor("k", transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        permanent = FirecrawlExtractor("k", transport=httpx.MockTransport(lambda r: httpx.Response(404, json={"error": "nope"})))

        with pytest.raises(TransientExternalError):
            await transient.extract("https://example.com")
        with pytest.raises(ExtractionError):
            await permanent.extract("https://example.com")

        await transient.close()
        await permanent.close()
