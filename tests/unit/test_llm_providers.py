"""Unit tests for the OpenAI-compatible LLM provider adapter."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from src.config.settings import Settings
from src.providers.llm.openai_provider import (
    OpenAILLMProvider,
    map_openai_error,
    parse_retry_after,
)
from src.utils.errors import ProviderAPIError, ProviderTimeoutError, RateLimitError

# ======================================================================
# Shared helpers
# ======================================================================

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _settings(**overrides) -> Settings:
    defaults = {
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "openai_text_model": "",
        "provider_max_retries": 0,
        "provider_retry_base_delay": 0.0,
        "_env_file": None,
    }
    defaults.update(overrides)
    return Settings(**defaults)


def _completion(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    response.usage = MagicMock(total_tokens=120)
    return response


def _client(**create_kwargs) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(**create_kwargs)
    client.models.list = AsyncMock(return_value=MagicMock())
    return client


def _rate_limit(retry_after: str | None = None) -> openai.RateLimitError:
    headers = {"retry-after": retry_after} if retry_after else {}
    return openai.RateLimitError(
        "Rate limit reached",
        response=httpx.Response(429, headers=headers, request=_REQUEST),
        body=None,
    )


def _status_error(status: int) -> openai.APIStatusError:
    return openai.APIStatusError(
        "Server error",
        response=httpx.Response(status, request=_REQUEST),
        body=None,
    )


# ======================================================================
# Error mapping
# ======================================================================


class TestErrorMapping:
    @pytest.mark.parametrize(
        "header, expected",
        [("12", 12.0), ("0.5", 0.5), ("", None), (None, None), ("soon", None), ("-3", None)],
    )
    def test_parse_retry_after(self, header, expected) -> None:
        assert parse_retry_after(header) == expected

    def test_rate_limit(self) -> None:
        mapped = map_openai_error(_rate_limit("7"), "openai", 30)
        assert isinstance(mapped, RateLimitError)
        assert mapped.retry_after_seconds == 7.0
        assert mapped.provider_name == "openai"

    def test_timeout(self) -> None:
        mapped = map_openai_error(openai.APITimeoutError(request=_REQUEST), "openai", 30)
        assert isinstance(mapped, ProviderTimeoutError)

    def test_status_error_keeps_code(self) -> None:
        mapped = map_openai_error(_status_error(503), "openai", 30)
        assert isinstance(mapped, ProviderAPIError)
        assert mapped.status_code == 503

    def test_connection_error_has_no_status(self) -> None:
        mapped = map_openai_error(openai.APIConnectionError(request=_REQUEST), "openai", 30)
        assert isinstance(mapped, ProviderAPIError)
        assert mapped.status_code is None


# ======================================================================
# OpenAI LLM Provider
# ======================================================================


class TestOpenAILLMProvider:
    def test_provider_name_and_availability(self) -> None:
        assert OpenAILLMProvider(_settings(), client=_client()).get_provider_name() == "openai"
        compatible = OpenAILLMProvider(_settings(openai_base_url="http://localhost:8080/v1"), client=_client())
        assert compatible.get_provider_name() == "openai-compatible"
        assert OpenAILLMProvider(_settings(openai_api_key=""), client=_client()).is_available() is False

    @pytest.mark.asyncio
    async def test_generate_sends_context_as_system_message(self) -> None:
        client = _client(return_value=_completion("Heaps are trees."))
        provider = OpenAILLMProvider(_settings(openai_text_model="gpt-test"), client=client)

        answer = await provider.generate("What is a heap?", context="You are a tutor.", temperature=0.2, max_tokens=50)

        assert answer == "Heaps are trees."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["messages"][0] == {"role": "system", "content": "You are a tutor."}
        assert kwargs["messages"][1] == {"role": "user", "content": "What is a heap?"}
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_empty_completion_is_api_error(self) -> None:
        provider = OpenAILLMProvider(_settings(), client=_client(return_value=_completion("")))
        with pytest.raises(ProviderAPIError):
            await provider.generate("q")

    @pytest.mark.asyncio
    async def test_rate_limit_is_not_retried(self) -> None:
        client = _client(side_effect=_rate_limit("20"))
        provider = OpenAILLMProvider(_settings(provider_max_retries=3), client=client)

        with pytest.raises(RateLimitError) as exc_info:
            await provider.generate("q")
        assert exc_info.value.retry_after_seconds == 20.0
        assert client.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self) -> None:
        client = _client(side_effect=[_status_error(500), _completion("second time lucky")])
        provider = OpenAILLMProvider(_settings(provider_max_retries=1), client=client)

        assert await provider.generate("q") == "second time lucky"
        assert client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_validate_credentials(self) -> None:
        client = _client()
        assert await OpenAILLMProvider(_settings(), client=client).validate_credentials() is True

        client.models.list = AsyncMock(side_effect=openai.APIConnectionError(request=_REQUEST))
        assert await OpenAILLMProvider(_settings(), client=client).validate_credentials() is False

        assert await OpenAILLMProvider(_settings(openai_api_key=""), client=_client()).validate_credentials() is False
