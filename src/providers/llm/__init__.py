"""LLM provider adapters.

OpenAILLMProvider implements ILLMProvider (src/interfaces/llm_provider.py)
for the OpenAI chat completions API and OpenAI-compatible endpoints
(OPENAI_BASE_URL, e.g. Groq).  main.py builds it and injects it into the
RAG service.
"""

from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
