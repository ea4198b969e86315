"""Cohere embedding provider adapter.

Calls the Cohere ``/v1/embed`` REST endpoint with ``httpx``.  Chunk texts
are embedded with ``input_type=search_document`` and questions with
``input_type=search_query``, which Cohere's v3 models require for
asymmetric retrieval.

HTTP outcomes map onto the provider error taxonomy:

    429                 → RateLimitError (Retry-After, default 60 s)
    httpx.TimeoutException → ProviderTimeoutError
    other non-2xx       → ProviderAPIError(status_code)
    malformed body      → ProviderAPIError(status_code)
    transport failure   → ProviderAPIError (no status)
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import ProviderAPIError, ProviderTimeoutError, RateLimitError
from src.utils.retry import retry_transient

logger = structlog.get_logger(logger_name=__name__)

_COHERE_BATCH_LIMIT = 96
_DEFAULT_RETRY_AFTER = 60.0

_MODEL_DIMENSIONS: dict[str, int] = {
    "embed-english-v3.0": 1024,
    "embed-multilingual-v3.0": 1024,
    "embed-english-light-v3.0": 384,
    "embed-multilingual-light-v3.0": 384,
}


def _is_vector_list(value: Any) -> bool:
    return isinstance(value, list) and all(
        isinstance(vector, list)
        and all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in vector)
        for vector in value
    )


class CohereEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the Cohere embed API.

    Parameters
    ----------
    settings:
        Supplies the API key, model, base URL, timeout and retry limits.
    http_client:
        Shared ``httpx.AsyncClient``; one is created when omitted.
    batch_size:
        Texts per request (capped at Cohere's limit of 96).
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        batch_size: int = _COHERE_BATCH_LIMIT,
    ) -> None:
        self._api_key = settings.cohere_api_key
        self._model = settings.cohere_embedding_model
        self._url = settings.cohere_base_url.rstrip("/") + "/v1/embed"
        self._timeout = settings.provider_timeout_seconds
        self._max_retries = settings.provider_max_retries
        self._retry_base_delay = settings.provider_retry_base_delay
        self._batch_size = max(1, min(batch_size, _COHERE_BATCH_LIMIT))
        self._http = http_client or httpx.AsyncClient()
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 1024)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return await self._embed_all(texts, input_type="search_document")

    async def embed_single(self, text: str) -> list[float]:
        result = await self._embed_all([text], input_type="search_query")
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "cohere_embedding"

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_all(self, texts: list[str], input_type: str) -> list[list[float]]:
        if not texts:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            vectors.extend(
                await retry_transient(
                    lambda batch=batch: self._post_batch(batch, input_type),
                    max_retries=self._max_retries,
                    base_delay=self._retry_base_delay,
                    operation="cohere_embed",
                )
            )
        return vectors

    async def _post_batch(self, batch: list[str], input_type: str) -> list[list[float]]:
        payload: dict[str, Any] = {
            "texts": batch,
            "model": self._model,
            "input_type": input_type,
            "truncate": "END",
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            response = await self._http.post(
                self._url,
                json=payload,
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                message=f"Cohere embed timed out after {self._timeout:g}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderAPIError(
                message=f"Cohere embed request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code == 429:
            retry_after = _DEFAULT_RETRY_AFTER
            header = response.headers.get("retry-after")
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    pass
            logger.warning("cohere_rate_limited", retry_after_s=retry_after)
            raise RateLimitError(
                message="Cohere rate limit exceeded",
                provider_name=self.get_provider_name(),
                retry_after_seconds=retry_after,
            )

        if response.status_code >= 400:
            raise ProviderAPIError(
                message=f"Cohere embed API error {response.status_code}: {response.text[:200]}",
                provider_name=self.get_provider_name(),
                status_code=response.status_code,
            )

        try:
            embeddings = response.json()["embeddings"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ProviderAPIError(
                message="Cohere embed returned an unexpected payload",
                provider_name=self.get_provider_name(),
                status_code=response.status_code,
            ) from exc

        if not _is_vector_list(embeddings):
            raise ProviderAPIError(
                message="Cohere embed returned an unexpected payload",
                provider_name=self.get_provider_name(),
                status_code=response.status_code,
            )

        if len(embeddings) != len(batch):
            raise ProviderAPIError(
                message=f"Cohere returned {len(embeddings)} vectors for {len(batch)} inputs",
                provider_name=self.get_provider_name(),
                status_code=response.status_code,
            )

        logger.info(
            "cohere_embedding_batch",
            model=self._model,
            batch_size=len(batch),
            input_type=input_type,
        )
        return embeddings
