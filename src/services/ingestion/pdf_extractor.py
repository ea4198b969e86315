"""PDF text extraction with PyMuPDF.

Opens PDF bytes in memory, extracts text page by page and returns
``(page_number, text)`` pairs for the chunker.  PyMuPDF is synchronous
and CPU-bound, so extraction runs in a worker thread via
``asyncio.to_thread`` to keep the event loop responsive.

Scanned PDFs without a text layer yield no text and are reported as a
:class:`~src.utils.errors.ParseError`; OCR is out of scope.
"""

from __future__ import annotations

import asyncio
import re

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.interfaces.document_fetcher import IDocumentExtractor
from src.utils.errors import ParseError

logger = structlog.get_logger(logger_name=__name__)

# Words hyphenated across a line break ("inter-\nnational").
_HYPHEN_LINEBREAK = re.compile(r"(\w)-\n(\w)")
# Runs of spaces/tabs produced by column layouts.
_INLINE_SPACE = re.compile(r"[ \t\u00a0]{2,}")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def normalize_page_text(text: str) -> str:
    """Tidy raw PyMuPDF output while keeping paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\x00", "")
    text = _HYPHEN_LINEBREAK.sub(r"\1\2", text)
    text = _INLINE_SPACE.sub(" ", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


class PDFTextExtractor(IDocumentExtractor):
    """Extract per-page text from PDF bytes."""

    async def extract_pages(self, data: bytes) -> list[tuple[int, str]]:
        return await asyncio.to_thread(self._extract_sync, data)

    @staticmethod
    def _extract_sync(data: bytes) -> list[tuple[int, str]]:
        if not data:
            raise ParseError(message="Document is empty", provider_name="pymupdf")

        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:  # noqa: BLE001 -- PyMuPDF raises several unrelated types
            logger.warning("pdf_open_failed", error=str(exc))
            raise ParseError(
                message=f"Unreadable or corrupt PDF: {exc}",
                provider_name="pymupdf",
            ) from exc

        pages: list[tuple[int, str]] = []
        try:
            if doc.needs_pass:
                raise ParseError(message="PDF is password protected", provider_name="pymupdf")
            for page_num in range(len(doc)):
                text = normalize_page_text(doc[page_num].get_text("text"))
                if text:
                    pages.append((page_num + 1, text))
            page_count = len(doc)
        except ParseError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ParseError(
                message=f"Failed to read PDF pages: {exc}",
                provider_name="pymupdf",
            ) from exc
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", pages=page_count)
            raise ParseError(
                message="PDF contains no extractable text",
                provider_name="pymupdf",
            )

        logger.info("pdf_extracted", pages=page_count, pages_with_text=len(pages))
        return pages
