"""Abstract base class for LLM (chat completion) providers.

The query engine calls :meth:`ILLMProvider.generate` twice per answered
question: once for the answer itself and once, with a small token budget,
for follow-up suggestions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OpenAILLMProvider (OpenAI, Groq or any
# OpenAI-compatible endpoint).  Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for text generation services."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        context: str = "",
        temperature: float = 0.1,
        max_tokens: int = 800,
    ) -> str:
        """Generate a completion for *prompt*.

        Parameters
        ----------
        prompt:
            The user-facing request (question plus assembled context).
        context:
            System/instruction text setting the model's behaviour.  Empty
            means the provider's neutral default.
        temperature:
            Sampling temperature (0.0 = deterministic).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        src.utils.errors.RateLimitError
        src.utils.errors.ProviderTimeoutError
        src.utils.errors.ProviderAPIError
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured (no network call)."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight API call to confirm credentials are valid."""
