"""Unit tests for PDFTextExtractor and page text normalisation."""

from __future__ import annotations

import pytest

from src.services.ingestion.pdf_extractor import PDFTextExtractor, normalize_page_text
from src.utils.errors import ParseError
from tests.conftest import make_pdf


class TestNormalizePageText:
    def test_joins_hyphenated_line_breaks(self) -> None:
        assert normalize_page_text("inter-\nnational") == "international"

    def test_collapses_spacing_but_keeps_paragraphs(self) -> None:
        raw = "Heaps    are\ttrees.\r\n\n\n\n\nNext  paragraph.\x00"
        assert normalize_page_text(raw) == "Heaps are\ttrees.\n\nNext paragraph."


class TestPDFTextExtractor:
    @pytest.mark.asyncio
    async def test_extracts_numbered_pages(self) -> None:
        data = make_pdf(["First page about the heap.", "Second page about the tree."])
        pages = await PDFTextExtractor().extract_pages(data)

        assert [n for n, _ in pages] == [1, 2]
        assert "heap" in pages[0][1]
        assert "tree" in pages[1][1]

    @pytest.mark.asyncio
    async def test_blank_pages_are_skipped(self) -> None:
        data = make_pdf(["Intro to sorting.", "", "Merge sort details."])
        pages = await PDFTextExtractor().extract_pages(data)
        assert [n for n, _ in pages] == [1, 3]

    @pytest.mark.asyncio
    async def test_pdf_without_text_is_parse_error(self) -> None:
        with pytest.raises(ParseError, match="no extractable text"):
            await PDFTextExtractor().extract_pages(make_pdf(["", ""]))

    @pytest.mark.asyncio
    async def test_corrupt_bytes_are_parse_error(self) -> None:
        with pytest.raises(ParseError):
            await PDFTextExtractor().extract_pages(b"this is not a pdf at all")

    @pytest.mark.asyncio
    async def test_empty_bytes_are_parse_error(self) -> None:
        with pytest.raises(ParseError, match="empty"):
            await PDFTextExtractor().extract_pages(b"")
