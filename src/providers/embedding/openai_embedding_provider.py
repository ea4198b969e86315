"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Works against OpenAI itself or any OpenAI-compatible embeddings endpoint
configured through ``openai_base_url`` / ``openai_embedding_model``.
"""

from __future__ import annotations

import asyncio

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.providers.llm.openai_provider import map_openai_error
from src.utils.errors import ProviderAPIError, ProviderTimeoutError
from src.utils.retry import retry_transient

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
    "nomic-embed-text": 768,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.  Inputs larger
    than ``batch_size`` are split into several requests, each bounded by
    ``provider_timeout_seconds``.
    """

    def __init__(
        self,
        settings: Settings,
        client: openai.AsyncOpenAI | None = None,
        batch_size: int = _OPENAI_BATCH_LIMIT,
    ) -> None:
        self._api_key = settings.openai_api_key
        self._timeout = settings.provider_timeout_seconds
        self._max_retries = settings.provider_max_retries
        self._retry_base_delay = settings.provider_retry_base_delay
        self._batch_size = max(1, min(batch_size, _OPENAI_BATCH_LIMIT))

        if client is None:
            client_kwargs: dict = {
                "api_key": self._api_key,
                "timeout": openai.Timeout(self._timeout, connect=5.0),
                "max_retries": 0,
            }
            if settings.openai_base_url:
                client_kwargs["base_url"] = settings.openai_base_url
            client = openai.AsyncOpenAI(**client_kwargs)

        self._client = client
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            vectors = await retry_transient(
                lambda batch=batch: self._embed_batch(batch),
                max_retries=self._max_retries,
                base_delay=self._retry_base_delay,
                operation="openai_embed",
            )
            all_embeddings.extend(vectors)
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            response = await asyncio.wait_for(
                self._client.embeddings.create(input=batch, model=self._model),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(
                message=f"{self._provider_label} timed out after {self._timeout:g}s",
                provider_name=self._provider_label,
            ) from exc
        except openai.APIError as exc:
            raise map_openai_error(exc, self._provider_label, self._timeout) from exc

        vectors = [item.embedding for item in response.data]
        if len(vectors) != len(batch):
            raise ProviderAPIError(
                message=f"{self._provider_label} returned {len(vectors)} vectors for {len(batch)} inputs",
                provider_name=self._provider_label,
            )
        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(batch),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return vectors
