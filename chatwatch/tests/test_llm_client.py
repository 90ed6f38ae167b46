"""Tests for LLMClient provider abstraction."""

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from chatwatch.common.llm_client import LLMClient, LLMResponse, LLMTransportError

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _anthropic_client(create):
    client = LLMClient(provider="anthropic", model="claude-test", anthropic_api_key="sk-test")
    client._client = MagicMock()
    client._client.messages.create = create
    return client


class TestLLMClientInit:
    def test_missing_anthropic_key_logs_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="chatwatch.common.llm_client"):
            client = LLMClient(provider="anthropic")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_missing_openai_key_logs_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="chatwatch.common.llm_client"):
            client = LLMClient(provider="openai")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_unsupported_provider_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="chatwatch.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text

    def test_anthropic_available_with_key(self):
        client = LLMClient(provider="anthropic", anthropic_api_key="sk-test")
        assert client.is_available


class TestLLMClientGenerate:
    @pytest.mark.asyncio
    async def test_generate_raises_when_unavailable(self):
        client = LLMClient(provider="anthropic")
        with pytest.raises(RuntimeError, match="not available"):
            await client.generate("test")

    @pytest.mark.asyncio
    async def test_success(self):
        response = SimpleNamespace(content=[SimpleNamespace(text='  [{"intent": "fyi"}]\n')])
        create = AsyncMock(return_value=response)
        client = _anthropic_client(create)

        result = await client.generate("Classify these 1 message(s)", system="policy", max_tokens=256, timeout=5.0)

        assert result == LLMResponse(status_code=200, text='[{"intent": "fyi"}]')
        assert result.ok
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == "policy"
        assert kwargs["max_tokens"] == 256
        assert kwargs["timeout"] == 5.0

    @pytest.mark.asyncio
    async def test_empty_content(self):
        client = _anthropic_client(AsyncMock(return_value=SimpleNamespace(content=[])))
        result = await client.generate("hi")
        assert result.status_code == 200
        assert result.text == ""

    @pytest.mark.asyncio
    async def test_throttled_reports_status_and_retry_after(self):
        http_response = httpx.Response(
            429,
            headers={"retry-after": "7"},
            text='{"error": {"message": "rate limited"}}',
            request=_REQUEST,
        )
        error = anthropic.RateLimitError("rate limited", response=http_response, body=None)
        client = _anthropic_client(AsyncMock(side_effect=error))

        result = await client.generate("hi")

        assert result.status_code == 429
        assert result.retry_after == 7.0
        assert "rate limited" in result.text
        assert not result.ok

    @pytest.mark.asyncio
    async def test_overloaded_without_header(self):
        http_response = httpx.Response(529, text="overloaded", request=_REQUEST)
        error = anthropic.APIStatusError("overloaded", response=http_response, body=None)
        client = _anthropic_client(AsyncMock(side_effect=error))

        result = await client.generate("hi")

        assert result.status_code == 529
        assert result.retry_after is None

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(self):
        error = anthropic.APIConnectionError(request=_REQUEST)
        client = _anthropic_client(AsyncMock(side_effect=error))
        with pytest.raises(LLMTransportError):
            await client.generate("hi")
