"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into fixed-length vectors.  The
ingestion pipeline embeds chunk texts with :meth:`IEmbeddingProvider.embed`
and the query engine embeds questions with
:meth:`IEmbeddingProvider.embed_single`; some services (Cohere) encode
documents and queries differently, which is why the two are separate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   CohereEmbeddingProvider: embed-english-light-v3.0 over httpx
#   OpenAIEmbeddingProvider: text-embedding-3-small (or any OpenAI-compatible model)
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate document embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more chunk texts.  Implementations split the list into
            provider-sized batches themselves.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*.

        Raises
        ------
        src.utils.errors.RateLimitError
            The provider answered HTTP 429.
        src.utils.errors.ProviderTimeoutError
            The call exceeded the configured timeout.
        src.utils.errors.ProviderAPIError
            Any other failure.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate a query embedding for a single text string.

        Raises the same errors as :meth:`embed`.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"cohere_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
