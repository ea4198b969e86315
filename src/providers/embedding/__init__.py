"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic
meaning.  Chunk vectors are stored in SQLite alongside the chunk text and
compared against query vectors by the VectorRetriever.

Two implementations of IEmbeddingProvider:
    1. CohereEmbeddingProvider: embed-english-light-v3.0 (384 dims) over
       the Cohere REST API (httpx); distinguishes document and query
       embeddings.
    2. OpenAIEmbeddingProvider: text-embedding-3-small (1536 dims), or any
       OpenAI-compatible endpoint.

Switching provider (or model) changes the vector dimension: reprocess the
materials afterwards, since the retriever skips vectors of another size.
"""

from src.providers.embedding.cohere_embedding_provider import CohereEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["CohereEmbeddingProvider", "OpenAIEmbeddingProvider"]
