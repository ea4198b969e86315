"""RAG question answering over a course's processed materials.

Data flow for :meth:`RAGService.query_with_history`:

  1. EMBED      -- the question becomes a query vector (``embed_single``).
  2. RETRIEVE   -- the VectorRetriever ranks chunks, hard-filtered to the
                   requested course.
  3. ASSEMBLE   -- chunks and recent chat turns share one character
                   budget (see :func:`assemble_context`).
  4. GENERATE   -- the LLM answers with the assembled context as its
                   system prompt.
  5. FOLLOW-UPS -- a second, cheaper call suggests questions to ask next.

Nothing here raises to the caller: an empty retrieval yields a
no-content answer (:func:`no_content_answer`) without calling the LLM,
and a provider or storage failure yields the message
:func:`fallback_answer` picks for that error kind.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.material_repository import IMaterialRepository
from src.models.rag import ChatTurn, CourseStats, RAGResponse, RetrievedChunk, SourceDocument
from src.services.retrieval.vector_retriever import VectorRetriever
from src.utils.errors import (
    LecternError,
    ProviderAPIError,
    ProviderTimeoutError,
    RateLimitError,
)
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

NO_CONTENT_ANSWER = (
    "I couldn't find relevant information in the available course materials. Please make "
    "sure you've selected the correct course, or try asking about a different topic."
)
NO_CONTENT_IN_COURSE_ANSWER = (
    "I couldn't find information about that topic in your selected course materials. "
    "This question might not be covered in the uploaded materials, or you might want "
    "to try rephrasing your question."
)
NO_CONTENT_FOLLOW_UPS = [
    "How do I upload course materials?",
    "What file formats are supported?",
    "How long does material processing take?",
]
RATE_LIMITED_ANSWER = (
    "The AI service is currently experiencing high demand. "
    "Please try again in a few moments."
)
TIMEOUT_ANSWER = (
    "The request timed out. Please try again with a shorter question "
    "or check your connection."
)
CONNECTIVITY_ANSWER = (
    "I'm experiencing connectivity issues with the AI service. Please try again in a moment. "
    "If the problem persists, the service may be temporarily unavailable."
)
PROVIDER_UNAVAILABLE_ANSWER = (
    "I'm sorry, I encountered an error while processing your question. "
    "Please try again or rephrase your question."
)
DEFAULT_FOLLOW_UPS = [
    "Can you explain this concept further?",
    "What are some practical applications?",
    "Are there related topics I should study?",
]

_SYSTEM_PROMPT = (
    "You are an expert AI tutor helping students learn from their course materials.\n"
    "Use the provided context to answer the student's question accurately and helpfully.\n\n"
    "Guidelines:\n"
    "- Base your answer primarily on the provided context\n"
    "- Be educational and explain concepts clearly\n"
    "- If the context doesn't fully answer the question, say so clearly\n"
    "- Keep responses concise but comprehensive\n"
    "- Always mention which material you're referencing\n\n"
    "Context from course materials:\n"
)
_HISTORY_HEADER = "\n\nRecent conversation:\n"

_FOLLOW_UP_LINE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*(.+)$")
_MIN_FOLLOW_UPS = 2
_MAX_FOLLOW_UPS = 4
_MIN_FOLLOW_UP_LENGTH = 10
_EXCERPT_CHARS = 200


@dataclass(frozen=True)
class AssembledContext:
    """Result of packing chunks and chat turns into the context budget."""

    chunk_text: str
    history_text: str
    used_chunks: list[RetrievedChunk]
    used_turns: int


def render_chunk(chunk: RetrievedChunk) -> str:
    return f"[From: {chunk.material_title}]\n{chunk.content}\n\n"


def render_turn(turn: ChatTurn) -> str:
    return f"Human: {turn.question}\nAssistant: {turn.answer}\n\n"


def assemble_context(
    chunks: list[RetrievedChunk],
    history: list[ChatTurn],
    max_chars: int,
    history_turns: int = 3,
    history_ratio: float = 0.25,
) -> AssembledContext:
    """Pack retrieved chunks and recent chat turns into *max_chars*.

    History is first reserved ``min(len(rendered history), max_chars *
    history_ratio)``.  Chunks then fill the remaining room in relevance
    order; the first chunk that does not fit ends the list, except that
    a top chunk too long for the whole room is truncated to it.  Whatever
    the chunks leave goes to history, newest turn first, dropping the
    oldest turns that do not fit.  Kept turns render oldest to newest.
    """
    recent = history[-history_turns:] if history_turns > 0 else []
    rendered_turns = [render_turn(t) for t in recent]
    reservation = min(sum(len(t) for t in rendered_turns), int(max_chars * history_ratio))

    chunk_room = max_chars - reservation
    parts: list[str] = []
    used_chunks: list[RetrievedChunk] = []
    used = 0
    for chunk in chunks:
        text = render_chunk(chunk)
        if used + len(text) > chunk_room:
            if not used_chunks and chunk_room > 0:
                parts.append(text[:chunk_room])
                used_chunks.append(chunk)
                used = chunk_room
            break
        parts.append(text)
        used_chunks.append(chunk)
        used += len(text)

    history_room = max_chars - used
    kept: list[str] = []
    for text in reversed(rendered_turns):
        if len(text) > history_room:
            break
        kept.append(text)
        history_room -= len(text)
    kept.reverse()

    return AssembledContext(
        chunk_text="".join(parts),
        history_text="".join(kept),
        used_chunks=used_chunks,
        used_turns=len(kept),
    )


def parse_follow_ups(text: str) -> list[str]:
    """Pull numbered or bulleted questions out of a model reply."""
    questions: list[str] = []
    for line in text.splitlines():
        match = _FOLLOW_UP_LINE.match(line)
        if not match:
            continue
        question = match.group(1).strip()
        if len(question) > _MIN_FOLLOW_UP_LENGTH:
            questions.append(question)
    return questions[:_MAX_FOLLOW_UPS]


def no_content_answer(course_id: str | None) -> str:
    return NO_CONTENT_IN_COURSE_ANSWER if course_id else NO_CONTENT_ANSWER


def fallback_answer(error: LecternError) -> str:
    """Pick the user-facing message for a failed query by error kind."""
    if isinstance(error, RateLimitError):
        return RATE_LIMITED_ANSWER
    if isinstance(error, ProviderTimeoutError):
        return TIMEOUT_ANSWER
    if isinstance(error, ProviderAPIError):
        return CONNECTIVITY_ANSWER
    return PROVIDER_UNAVAILABLE_ANSWER


class RAGService:
    """Answers course questions from retrieved material chunks.

    Parameters
    ----------
    embedding_provider:
        Embeds the question.
    llm:
        Generates the answer and the follow-up questions.
    retriever:
        Ranks chunks of processed materials.
    repository:
        Material persistence, for course statistics.
    top_k / max_context_chars / history_turns / history_budget_ratio:
        Retrieval and context-budget settings.
    temperature / max_answer_tokens:
        Generation settings for the answer call.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        llm: ILLMProvider,
        retriever: VectorRetriever,
        repository: IMaterialRepository,
        *,
        top_k: int = 5,
        max_context_chars: int = 8000,
        history_turns: int = 3,
        history_budget_ratio: float = 0.25,
        temperature: float = 0.1,
        max_answer_tokens: int = 800,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._llm = llm
        self._retriever = retriever
        self._repository = repository
        self._top_k = top_k
        self._max_context_chars = max_context_chars
        self._history_turns = history_turns
        self._history_budget_ratio = history_budget_ratio
        self._temperature = temperature
        self._max_answer_tokens = max_answer_tokens

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def query_with_history(
        self,
        question: str,
        chat_history: list[ChatTurn] | None = None,
        course_id: str | None = None,
    ) -> RAGResponse:
        """Answer *question* using the course's materials and recent turns."""
        history = chat_history or []
        try:
            query_vector = await self._embedding_provider.embed_single(question)
            chunks = await self._retriever.retrieve(query_vector, course_id=course_id, top_k=self._top_k)
        except LecternError as exc:
            logger.error("rag_retrieval_failed", error=str(exc), course_id=course_id)
            return RAGResponse(answer=fallback_answer(exc))

        if not chunks:
            logger.info("rag_no_content", course_id=course_id, question=question[:80])
            return RAGResponse(
                answer=no_content_answer(course_id),
                follow_up_questions=list(NO_CONTENT_FOLLOW_UPS),
            )

        context = assemble_context(
            chunks,
            history,
            self._max_context_chars,
            history_turns=self._history_turns,
            history_ratio=self._history_budget_ratio,
        )
        system_prompt = _SYSTEM_PROMPT + context.chunk_text
        if context.history_text:
            system_prompt += _HISTORY_HEADER + context.history_text

        try:
            answer = await self._llm.generate(
                question,
                context=system_prompt,
                temperature=self._temperature,
                max_tokens=self._max_answer_tokens,
            )
        except LecternError as exc:
            logger.error("rag_generation_failed", error=str(exc), course_id=course_id)
            return RAGResponse(answer=fallback_answer(exc))

        follow_ups = await self._generate_follow_ups(question, answer, context.used_chunks)
        sources = [self._to_source(c) for c in context.used_chunks]

        logger.info(
            "rag_answered",
            course_id=course_id,
            chunks=len(sources),
            history_turns=context.used_turns,
            top_score=round(chunks[0].similarity_score, 4),
        )
        return RAGResponse(answer=answer, source_documents=sources, follow_up_questions=follow_ups)

    async def get_course_stats(self, course_id: str | None = None) -> CourseStats:
        counts = await self._repository.count_materials(course_id=course_id)
        average = (
            counts.total_chunks / counts.processed_materials
            if counts.processed_materials > 0
            else 0.0
        )
        return CourseStats(
            total_materials=counts.total_materials,
            processed_materials=counts.processed_materials,
            total_chunks=counts.total_chunks,
            average_chunks_per_material=average,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _generate_follow_ups(
        self,
        question: str,
        answer: str,
        chunks: list[RetrievedChunk],
    ) -> list[str]:
        titles = list(dict.fromkeys(c.material_title for c in chunks))
        prompt = (
            "Based on this educational Q&A, suggest 3 relevant follow-up questions:\n\n"
            f"Original Question: {question}\n"
            f"Answer: {answer}\n"
            f"Materials: {', '.join(titles[:2])}\n\n"
            "Generate 3 specific, educational follow-up questions that would help the "
            "student learn more about this topic, one per line, numbered."
        )
        try:
            reply = await self._llm.generate(prompt, temperature=0.7, max_tokens=200)
        except LecternError as exc:
            logger.warning("rag_follow_ups_failed", error=str(exc))
            return list(DEFAULT_FOLLOW_UPS)

        questions = parse_follow_ups(reply)
        if len(questions) < _MIN_FOLLOW_UPS:
            return list(DEFAULT_FOLLOW_UPS)
        return questions

    @staticmethod
    def _to_source(chunk: RetrievedChunk) -> SourceDocument:
        return SourceDocument(
            material_id=chunk.material_id,
            title=chunk.material_title,
            page_number=chunk.page_number,
            chunk_index=chunk.chunk_index,
            relevance_score=chunk.similarity_score,
            excerpt=chunk.content[:_EXCERPT_CHARS],
        )
