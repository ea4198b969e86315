"""Public interface definitions for all external collaborators.

Every external service used by Lectern (embedding and chat APIs, the
database, the blob store, the cache) is accessed exclusively through the
abstract base classes defined in this package.  Concrete adapters live in
``src/providers/`` and are injected by ``src/main.py`` (or the CLI), so
unit tests can hand any service a fake instead.

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementations
    ─────────────────────────────────────────────────────────────────────
    ILLMProvider               →  OpenAILLMProvider
    IEmbeddingProvider         →  CohereEmbeddingProvider,
                                  OpenAIEmbeddingProvider
    IMaterialRepository        →  SQLiteMaterialRepository
    IJobRepository             →  SQLiteJobRepository
    IDocumentFetcher           →  HttpDocumentFetcher
    IDocumentExtractor         →  PDFTextExtractor
    ICacheProvider             →  MemoryCacheProvider
"""

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.document_fetcher import IDocumentExtractor, IDocumentFetcher
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.job_repository import IJobRepository
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.material_repository import (
    IMaterialRepository,
    MaterialCounts,
    SearchableChunk,
)

__all__ = [
    "ICacheProvider",
    "IDocumentExtractor",
    "IDocumentFetcher",
    "IEmbeddingProvider",
    "IJobRepository",
    "ILLMProvider",
    "IMaterialRepository",
    "MaterialCounts",
    "SearchableChunk",
]
