"""Abstract base classes for getting course documents into text form.

:class:`IDocumentFetcher` resolves a material's file URL to raw bytes and
:class:`IDocumentExtractor` turns those bytes into per-page text.  Both
are injected into the ingestion pipeline so tests can substitute fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: HttpDocumentFetcher (src/providers/fetch/)
class IDocumentFetcher(ABC):
    """Contract for downloading a document."""

    @abstractmethod
    async def fetch(self, url: str) -> bytes:
        """Return the bytes stored at *url*.

        Raises
        ------
        src.utils.errors.FetchError
            On a non-success status or network failure.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this fetcher."""


# Concrete implementation: PDFTextExtractor (src/services/ingestion/)
class IDocumentExtractor(ABC):
    """Contract for extracting page text from document bytes."""

    @abstractmethod
    async def extract_pages(self, data: bytes) -> list[tuple[int, str]]:
        """Return ``(page_number, text)`` pairs, 1-based, in page order.

        Raises
        ------
        src.utils.errors.ParseError
            If the document is corrupt or contains no extractable text.
        """
