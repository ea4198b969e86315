"""Character-window text chunking with overlap and natural break points.

Splits extracted page text into :class:`~src.models.rag.TextChunk`
objects no longer than ``chunk_size`` characters.  Consecutive chunks of
a page share up to ``overlap`` characters so that a sentence crossing a
cut point is still retrievable from at least one chunk.

Where each window ends is chosen by looking back from the size limit
(at most ``lookback`` characters) for the best break, in this order:

1. a paragraph break (blank line),
2. the end of a sentence (``.``, ``!`` or ``?`` followed by whitespace,
   ignoring common abbreviations such as "Dr." or "e.g."),
3. any whitespace,
4. otherwise a hard cut at the limit.

The break must lie beyond the overlap region so every window advances.
The next window starts ``overlap`` characters before the previous end,
nudged forward to the next word boundary.  Chunking never looks at
anything but the input text and configuration, so it is deterministic.
"""

from __future__ import annotations

import re

import structlog

from src.models.rag import TextChunk

logger = structlog.get_logger(logger_name=__name__)

# Common abbreviations that should NOT count as a sentence end.
_ABBREVIATIONS = frozenset(
    {
        "dr",
        "mr",
        "mrs",
        "ms",
        "prof",
        "jr",
        "sr",
        "st",
        "vs",
        "etc",
        "e.g",
        "i.e",
        "fig",
        "eq",
        "no",
        "vol",
        "approx",
        "cf",
        "al",
    }
)

_SENTENCE_END = re.compile(r"[.!?]+[\"')\]]*\s")
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")
_WORD_BEFORE = re.compile(r"([\w.]+)[.!?]*$")


class TextChunker:
    """Splits page text into bounded, overlapping chunks.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk (default 1000).
    overlap:
        Characters shared between consecutive chunks (default 200).
    lookback:
        How far back from the size limit to search for a break (default 200).

    Raises
    ------
    ValueError
        If ``chunk_size <= 0``, ``overlap < 0``, ``overlap >= chunk_size``
        or ``lookback < 0``.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200, lookback: int = 200) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError("overlap must be >= 0 and smaller than chunk_size")
        if lookback < 0:
            raise ValueError("lookback must be >= 0")
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._lookback = min(lookback, chunk_size)

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk_pages(self, pages: list[tuple[int, str]]) -> list[TextChunk]:
        """Chunk ``(page_number, text)`` pairs in the order given.

        ``chunk_index`` runs contiguously from 0 across all pages; each
        chunk keeps the number of the page it came from.  Empty or
        whitespace-only pages contribute no chunks.
        """
        chunks: list[TextChunk] = []
        for page_number, text in pages:
            for start, end in self._split_spans(text):
                chunks.append(
                    TextChunk(
                        content=text[start:end],
                        chunk_index=len(chunks),
                        page_number=page_number,
                        start_char=start,
                        end_char=end,
                    )
                )

        logger.debug(
            "chunking_complete",
            pages=len(pages),
            num_chunks=len(chunks),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks

    def chunk_text(self, text: str, page_number: int | None = None) -> list[TextChunk]:
        """Chunk a single block of text."""
        return [
            TextChunk(
                content=text[start:end],
                chunk_index=index,
                page_number=page_number,
                start_char=start,
                end_char=end,
            )
            for index, (start, end) in enumerate(self._split_spans(text))
        ]

    # ------------------------------------------------------------------
    # Window computation
    # ------------------------------------------------------------------

    def _split_spans(self, text: str) -> list[tuple[int, int]]:
        """Return ``(start, end)`` offsets of each chunk, whitespace-trimmed."""
        n = len(text)
        start = self._skip_whitespace(text, 0)
        spans: list[tuple[int, int]] = []

        while start < n:
            limit = min(start + self._chunk_size, n)
            end = n if limit == n else self._find_break(text, start, limit)

            content_end = end
            while content_end > start and text[content_end - 1].isspace():
                content_end -= 1
            spans.append((start, content_end))

            if end >= n:
                break
            start = self._next_start(text, start, end)

        return spans

    def _find_break(self, text: str, start: int, limit: int) -> int:
        """Pick the end offset (exclusive) of the window ``[start, limit)``."""
        low = max(start + self._overlap + 1, limit - self._lookback)
        if low >= limit:
            return limit

        paragraph_end = -1
        for match in _PARAGRAPH_BREAK.finditer(text, low, limit):
            paragraph_end = match.end()
        if paragraph_end > low:
            return paragraph_end

        sentence_end = -1
        for match in _SENTENCE_END.finditer(text, low, limit):
            if not self._is_abbreviation(text, match.start()):
                sentence_end = match.end()
        if sentence_end > low:
            return sentence_end

        for pos in range(limit - 1, low - 1, -1):
            if text[pos].isspace():
                return pos + 1

        return limit

    def _next_start(self, text: str, start: int, end: int) -> int:
        """Start of the window after ``[start, end)``, always > *start*."""
        candidate = max(end - self._overlap, start + 1)
        aligned = candidate
        while aligned < end and not text[aligned - 1].isspace():
            aligned += 1
        if aligned >= end:
            aligned = candidate
        return self._skip_whitespace(text, aligned)

    @staticmethod
    def _skip_whitespace(text: str, pos: int) -> int:
        n = len(text)
        while pos < n and text[pos].isspace():
            pos += 1
        return pos

    @staticmethod
    def _is_abbreviation(text: str, punct_pos: int) -> bool:
        """Return ``True`` if the punctuation at *punct_pos* ends a known abbreviation."""
        head = text[max(0, punct_pos - 12) : punct_pos + 1]
        match = _WORD_BEFORE.search(head)
        if match is None:
            return False
        word = match.group(1).rstrip(".").lower()
        return word in _ABBREVIATIONS
