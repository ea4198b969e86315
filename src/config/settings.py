"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources, in priority order:
#
#   1. **Environment variables**: e.g. COHERE_API_KEY=abc123
#   2. **.env file**: key=value lines in the project root .env file
#
# Field ``chunk_size`` maps to env var ``CHUNK_SIZE`` automatically.
# Defaults below apply when neither source sets a value.
#
# The .env file is never committed; .env.example lists every variable.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Lectern application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Generation / embedding providers ===
    # Empty string = "not configured"; main.py skips providers with empty keys.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint, e.g. https://api.groq.com/openai/v1
    openai_text_model: str = ""  # Defaults to gpt-4o-mini when empty
    openai_embedding_model: str = ""  # Defaults to text-embedding-3-small when empty
    cohere_api_key: str = ""
    cohere_embedding_model: str = "embed-english-light-v3.0"
    cohere_base_url: str = "https://api.cohere.ai"
    # "auto" prefers Cohere when a key is set, then OpenAI.
    embedding_provider: str = "auto"
    provider_timeout_seconds: float = 30.0
    provider_max_retries: int = 3
    provider_retry_base_delay: float = 1.0

    # === Persistence ===
    database_path: str = "data/lectern.db"

    # === Chunking / ingestion ===
    chunk_size: int = 1000
    chunk_overlap: int = 200
    chunk_break_lookback: int = 200
    embedding_batch_size: int = 10
    fetch_timeout_seconds: float = 60.0
    max_document_bytes: int = 50 * 1024 * 1024

    # === Retrieval / RAG ===
    rag_top_k: int = 5
    rag_min_similarity: float = 0.7
    rag_max_context_chars: int = 8000
    rag_history_turns: int = 3
    rag_history_budget_ratio: float = 0.25
    rag_temperature: float = 0.1
    rag_max_answer_tokens: int = 800

    # === Processing queue ===
    queue_max_attempts: int = 3
    queue_poll_interval: float = 5.0
    queue_backoff_multiplier: float = 1.5
    queue_max_poll_backoff: float = 60.0
    queue_lease_seconds: float = 600.0
    queue_retry_base_delay: float = 5.0
    queue_retry_max_delay: float = 300.0
    queue_worker_enabled: bool = True

    # === Status cache ===
    status_cache_ttl: int = 300
    status_cache_size: int = 1000

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_allowed_origins: str = "*"

    @model_validator(mode="after")
    def _check_chunking(self) -> Settings:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")
        if self.embedding_batch_size <= 0:
            raise ValueError("embedding_batch_size must be positive")
        return self

    def get_cors_origins(self) -> list[str]:
        """Split ``cors_allowed_origins`` into a list, ignoring blanks."""
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have API keys configured."""
        providers: list[str] = []
        if self.cohere_api_key:
            providers.append("cohere")
        if self.openai_api_key:
            providers.append("openai")
        return providers
