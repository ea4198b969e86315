"""Unit tests for provider selection and component assembly in src.main."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.config.settings import Settings
from src.main import (
    _build_embedding_provider,
    _build_llm_provider,
    build_components,
    close_components,
    initialize_components,
)
from src.providers.embedding.cohere_embedding_provider import CohereEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.services.queue.processing_queue import ProcessingQueueManager
from src.services.queue.queue_worker import QueueWorker
from src.services.rag_service import RAGService
from src.utils.errors import ConfigurationError


def _settings(**overrides) -> Settings:
    defaults = {
        "openai_api_key": "",
        "cohere_api_key": "",
        "embedding_provider": "auto",
        "_env_file": None,
    }
    defaults.update(overrides)
    return Settings(**defaults)


class TestEmbeddingProviderSelection:
    def test_auto_prefers_cohere(self) -> None:
        provider = _build_embedding_provider(_settings(cohere_api_key="co", openai_api_key="sk"))
        assert isinstance(provider, CohereEmbeddingProvider)

    def test_auto_falls_back_to_openai(self) -> None:
        provider = _build_embedding_provider(_settings(openai_api_key="sk"))
        assert isinstance(provider, OpenAIEmbeddingProvider)

    def test_explicit_choice_wins(self) -> None:
        provider = _build_embedding_provider(
            _settings(cohere_api_key="co", openai_api_key="sk", embedding_provider="OpenAI")
        )
        assert isinstance(provider, OpenAIEmbeddingProvider)

    def test_nothing_configured_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            _build_embedding_provider(_settings())

    def test_explicit_choice_without_key_raises(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _build_embedding_provider(_settings(openai_api_key="sk", embedding_provider="cohere"))
        assert exc_info.value.provider_name == "cohere"

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            _build_embedding_provider(_settings(cohere_api_key="co", embedding_provider="word2vec"))


class TestLLMProvider:
    def test_built_even_without_key(self) -> None:
        provider = _build_llm_provider(_settings())
        assert isinstance(provider, OpenAILLMProvider)
        assert provider.is_available() is False


class TestBuildComponents:
    @pytest.mark.asyncio
    async def test_wires_the_object_graph(self, tmp_path: Path) -> None:
        app_settings = _settings(
            cohere_api_key="co",
            openai_api_key="sk",
            database_path=str(tmp_path / "app.db"),
        )
        components = build_components(app_settings)
        try:
            await initialize_components(components)

            assert isinstance(components["queue_manager"], ProcessingQueueManager)
            assert isinstance(components["queue_worker"], QueueWorker)
            assert isinstance(components["rag_service"], RAGService)
            assert components["queue_manager"].max_attempts == app_settings.queue_max_attempts
            assert components["retriever"].min_similarity == pytest.approx(0.7)
            assert components["provider_registry"] == {
                "embedding": True,
                "embedding_provider": "cohere_embedding",
                "llm": True,
                "llm_provider": "openai",
            }
            assert (tmp_path / "app.db").exists()
        finally:
            await close_components(components)

        assert components["http_client"].is_closed
