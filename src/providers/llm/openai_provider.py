"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
When ``openai_base_url`` is configured (Groq, TogetherAI, Fireworks, a
local vLLM server) the same client talks to that endpoint instead, so
this one adapter covers every chat backend Lectern supports.

SDK exceptions are translated into the provider error taxonomy:

    openai.RateLimitError     → RateLimitError (Retry-After honoured)
    openai.APITimeoutError    → ProviderTimeoutError
    asyncio.TimeoutError      → ProviderTimeoutError
    openai.APIStatusError     → ProviderAPIError(status_code)
    openai.APIError (other)   → ProviderAPIError
"""

from __future__ import annotations

import asyncio

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import (
    ProviderAPIError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
)
from src.utils.retry import retry_transient

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds; ``None`` if absent or invalid."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def map_openai_error(exc: openai.APIError, provider_name: str, timeout: float) -> ProviderError:
    """Translate an ``openai`` SDK exception into the provider taxonomy."""
    if isinstance(exc, openai.RateLimitError):
        retry_after = parse_retry_after(exc.response.headers.get("retry-after"))
        return RateLimitError(
            message=f"{provider_name} rate limit exceeded",
            provider_name=provider_name,
            retry_after_seconds=retry_after,
        )
    if isinstance(exc, openai.APITimeoutError):
        return ProviderTimeoutError(
            message=f"{provider_name} timed out after {timeout:g}s",
            provider_name=provider_name,
        )
    if isinstance(exc, openai.APIStatusError):
        return ProviderAPIError(
            message=f"{provider_name} API error: {exc.message}",
            provider_name=provider_name,
            status_code=exc.status_code,
        )
    return ProviderAPIError(message=f"{provider_name} API error: {exc}", provider_name=provider_name)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    Uses ``gpt-4o-mini`` unless ``openai_text_model`` is set.  Every call
    is bounded by ``provider_timeout_seconds`` and transient 5xx/network
    failures are retried up to ``provider_max_retries`` times.
    """

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._api_key = settings.openai_api_key
        self._timeout = settings.provider_timeout_seconds
        self._max_retries = settings.provider_max_retries
        self._retry_base_delay = settings.provider_retry_base_delay

        if client is None:
            client_kwargs: dict = {
                "api_key": self._api_key,
                "timeout": openai.Timeout(self._timeout, connect=5.0),
                # Retries are handled by retry_transient so that 429s surface.
                "max_retries": 0,
            }
            if settings.openai_base_url:
                client_kwargs["base_url"] = settings.openai_base_url
            client = openai.AsyncOpenAI(**client_kwargs)

        self._client = client
        self._text_model = settings.openai_text_model or "gpt-4o-mini"
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

    async def generate(
        self,
        prompt: str,
        context: str = "",
        temperature: float = 0.1,
        max_tokens: int = 800,
    ) -> str:
        """Generate a chat completion with *context* as the system message."""
        messages = [
            {"role": "system", "content": context or _DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        async def _call() -> str:
            try:
                response = await asyncio.wait_for(
                    self._client.chat.completions.create(
                        model=self._text_model,
                        messages=messages,
                        temperature=temperature,
                        max_tokens=max_tokens,
                    ),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError as exc:
                raise ProviderTimeoutError(
                    message=f"{self._provider_label} timed out after {self._timeout:g}s",
                    provider_name=self.get_provider_name(),
                ) from exc
            except openai.APIError as exc:
                raise map_openai_error(exc, self.get_provider_name(), self._timeout) from exc

            content = response.choices[0].message.content if response.choices else None
            if not content:
                raise ProviderAPIError(
                    message=f"{self._provider_label} returned empty response",
                    provider_name=self.get_provider_name(),
                )
            logger.info(
                "llm_completion",
                model=self._text_model,
                provider=self._provider_label,
                tokens=response.usage.total_tokens if response.usage else None,
            )
            return content

        return await retry_transient(
            _call,
            max_retries=self._max_retries,
            base_delay=self._retry_base_delay,
            operation="llm_generate",
        )

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """List models to confirm the key is accepted without inference cost."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        return self._provider_label
