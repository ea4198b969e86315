"""HTTP document fetcher.

Downloads material PDFs from their blob-store URL with ``httpx``.  The
body is streamed so that oversized uploads are rejected before being
fully buffered.
"""

from __future__ import annotations

import httpx
import structlog

from src.interfaces.document_fetcher import IDocumentFetcher
from src.utils.errors import FetchError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 60.0
_DEFAULT_MAX_BYTES = 50 * 1024 * 1024
_DEFAULT_HEADERS = {"User-Agent": "lectern-ingest/0.1", "Accept": "application/pdf,*/*"}


class HttpDocumentFetcher(IDocumentFetcher):
    """Fetch documents over HTTP(S).

    Parameters
    ----------
    http_client:
        Shared client; a redirect-following one is created when omitted.
    timeout:
        Per-request timeout in seconds.
    max_bytes:
        Largest accepted body.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        max_bytes: int = _DEFAULT_MAX_BYTES,
    ) -> None:
        self._client = http_client or httpx.AsyncClient(follow_redirects=True)
        self._timeout = timeout
        self._max_bytes = max_bytes

    async def fetch(self, url: str) -> bytes:
        """Download *url* and return its body."""
        if not url.startswith(("http://", "https://")):
            raise FetchError(
                message=f"Unsupported URL scheme: {url}",
                provider_name=self.get_provider_name(),
            )

        try:
            async with self._client.stream(
                "GET",
                url,
                headers=_DEFAULT_HEADERS,
                timeout=self._timeout,
            ) as response:
                if response.status_code >= 400:
                    raise FetchError(
                        message=f"HTTP {response.status_code} fetching {url}",
                        provider_name=self.get_provider_name(),
                        status_code=response.status_code,
                    )
                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > self._max_bytes:
                        raise FetchError(
                            message=f"Document at {url} exceeds {self._max_bytes} bytes",
                            provider_name=self.get_provider_name(),
                            status_code=response.status_code,
                        )
        except httpx.TimeoutException as exc:
            raise FetchError(
                message=f"Timeout fetching {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(
                message=f"HTTP error fetching {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("document_fetched", url=url, bytes=len(body))
        return bytes(body)

    def get_provider_name(self) -> str:
        return "http"
