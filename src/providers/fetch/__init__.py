"""Document fetchers (blob store → bytes)."""

from src.providers.fetch.http_document_fetcher import HttpDocumentFetcher

__all__ = ["HttpDocumentFetcher"]
