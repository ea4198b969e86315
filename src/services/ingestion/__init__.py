"""Material ingestion pipeline.

Stages:

1. **Fetch** (via IDocumentFetcher) -- download the PDF from its URL.
2. **Extract** (pdf_extractor.py / PDFTextExtractor) -- per-page text
   with PyMuPDF.
3. **Chunk** (chunker.py / TextChunker) -- bounded, overlapping
   character windows that prefer paragraph and sentence breaks.
4. **Embed** (via IEmbeddingProvider) -- batched document embeddings.
5. **Persist** (via IMaterialRepository) -- atomic chunk-set swap.

IngestionService runs all five and returns an ``Ok``/``Err`` result.
"""

from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.ingestion_service import IngestionError, IngestionService
from src.services.ingestion.pdf_extractor import PDFTextExtractor

__all__ = [
    "IngestionError",
    "IngestionService",
    "PDFTextExtractor",
    "TextChunker",
]
