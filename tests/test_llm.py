"""
Tests for deliberation.services.llm.

The HTTP layer is replaced by httpx.MockTransport so the timeout and
transport classification can be exercised without a network.
"""

import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from deliberation.core.config import get_settings
from deliberation.core.errors import GenerationTimeoutError, GenerationTransportError
from deliberation.services import llm


def _completion(text: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 5},
    }


@pytest_asyncio.fixture
async def mock_http(monkeypatch):
    """Install a mock transport; tests set `handler` on the returned holder."""
    monkeypatch.setattr(get_settings(), "gemini_api_key", "test-key")
    holder = {"handler": None, "requests": []}

    async def dispatch(request: httpx.Request):
        holder["requests"].append(request)
        return await holder["handler"](request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(dispatch))
    monkeypatch.setattr(llm, "_client", client)
    yield holder
    await client.aclose()


class TestLLMClient:
    """Test the generation client contract."""

    @pytest.mark.asyncio
    async def test_returns_completion_text(self, mock_http):
        async def handler(request):
            return httpx.Response(200, json=_completion("Hello there."))

        mock_http["handler"] = handler
        text = await llm.LLMClient().complete("system", "user", 123)

        assert text == "Hello there."
        [request] = mock_http["requests"]
        assert request.headers["Authorization"] == "Bearer test-key"
        assert str(request.url).endswith("/chat/completions")

    @pytest.mark.asyncio
    async def test_sends_prompts_and_budget(self, mock_http):
        async def handler(request):
            return httpx.Response(200, json=_completion("ok"))

        mock_http["handler"] = handler
        await llm.LLMClient(model="test-model").complete("be brief", "say hi", 77)

        payload = json.loads(mock_http["requests"][0].content)
        assert payload["model"] == "test-model"
        assert payload["max_tokens"] == 77
        assert payload["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "say hi"},
        ]

    @pytest.mark.asyncio
    async def test_error_status_is_transport_error(self, mock_http):
        async def handler(request):
            return httpx.Response(503, text="overloaded")

        mock_http["handler"] = handler
        with pytest.raises(GenerationTransportError) as exc:
            await llm.LLMClient().complete("s", "u", 10)
        assert exc.value.status_code == 503
        assert exc.value.kind == "transport"

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(self, mock_http):
        async def handler(request):
            raise httpx.ConnectError("refused", request=request)

        mock_http["handler"] = handler
        with pytest.raises(GenerationTransportError):
            await llm.LLMClient().complete("s", "u", 10)

    @pytest.mark.asyncio
    async def test_httpx_timeout_is_timeout_error(self, mock_http):
        async def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        mock_http["handler"] = handler
        with pytest.raises(GenerationTimeoutError) as exc:
            await llm.LLMClient().complete("s", "u", 10)
        assert exc.value.kind == "timeout"

    @pytest.mark.asyncio
    async def test_budget_is_enforced(self, mock_http, monkeypatch):
        monkeypatch.setattr(get_settings(), "llm_timeout_seconds", 0.05)

        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=_completion("too late"))

        mock_http["handler"] = handler
        with pytest.raises(GenerationTimeoutError) as exc:
            await llm.LLMClient().complete("s", "u", 10)
        assert exc.value.timeout_seconds == 0.05

    @pytest.mark.asyncio
    async def test_missing_content_is_transport_error(self, mock_http):
        async def handler(request):
            return httpx.Response(200, json={"choices": []})

        mock_http["handler"] = handler
        with pytest.raises(GenerationTransportError):
            await llm.LLMClient().complete("s", "u", 10)

    @pytest.mark.asyncio
    async def test_non_json_body_is_transport_error(self, mock_http):
        async def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        mock_http["handler"] = handler
        with pytest.raises(GenerationTransportError):
            await llm.LLMClient().complete("s", "u", 10)

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "gemini_api_key", "")
        with pytest.raises(GenerationTransportError) as exc:
            await llm.LLMClient(provider="gemini").complete("s", "u", 10)
        assert "GEMINI_API_KEY" in str(exc.value)
