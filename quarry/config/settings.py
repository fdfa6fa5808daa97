"""
Settings Management

Provides centralized, type-safe configuration using Pydantic.
Supports environment variables, .env files, and hierarchical config.

Design decisions:
- Using pydantic-settings for validation and type coercion
- Immutable settings after initialization (frozen model)
- One Settings value is built at startup and passed to constructors;
  leaf components never read the environment themselves
- Backend selection is a Literal field, resolved once by the runtime factory
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024
KIB = 1024


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    # Exactly one provider is used per process
    provider: Literal["openai", "ollama", "stub"] = "ollama"

    # Managed provider
    openai_api_key: SecretStr | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_model: str = Field(default="text-embedding-ada-002")

    # Self-hosted provider
    ollama_endpoint: str = Field(default="http://localhost:11434/api/embeddings")
    ollama_model: str = Field(default="nomic-embed-text:latest")

    # Expected vector length; None accepts whatever the provider returns
    dimension: int | None = Field(default=None, ge=1)

    # Inputs longer than this are truncated before the call
    max_chars: int = Field(default=4000, ge=1)
    timeout: float = Field(default=20.0, gt=0)


class LLMSettings(BaseSettings):
    """Generation backend configuration."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    provider: Literal["openai", "ollama", "stub"] = "ollama"

    # OpenAI settings
    openai_api_key: SecretStr | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_model: str = Field(default="gpt-3.5-turbo")

    # Ollama settings
    ollama_generate_endpoint: str = Field(default="http://localhost:11434/api/generate")
    ollama_model: str = Field(default="llama3.1:latest")

    # Stub adapter settings
    stub_model_name: str = Field(default="stub-model-v1")
    stub_stream_delay_ms: int = Field(default=20, ge=0)

    # Shared settings
    system_prompt: str = Field(
        default=(
            "You are an intelligent assistant. Use the provided context to answer "
            "concisely and accurately."
        )
    )
    max_tokens: int = Field(default=2000, ge=1)
    qa_max_tokens: int = Field(default=300, ge=1)
    request_timeout: float = Field(default=120.0, gt=0)


class VectorStoreSettings(BaseSettings):
    """Vector store configuration."""

    model_config = SettingsConfigDict(env_prefix="VECTOR_")

    provider: Literal["chroma", "memory"] = "chroma"

    # Chroma settings
    chroma_url: str = Field(default="http://localhost:8000")

    # Upsert backpressure
    upsert_batch_size: int = Field(default=10, ge=1)
    upsert_pause_seconds: float = Field(default=0.1, ge=0)

    # Retrieval settings
    max_query_results: int = Field(default=10, ge=1)
    default_top_k: int = Field(default=5, ge=1)


class IngestionSettings(BaseSettings):
    """Document ingestion configuration."""

    model_config = SettingsConfigDict(env_prefix="INGEST_")

    max_file_size: int = Field(default=10 * MIB, ge=1)
    chunk_size: int = Field(default=1000, ge=2)
    chunk_overlap: int = Field(default=100, ge=0)

    # Embedding/upsert batches and the pause between them
    batch_size: int = Field(default=5, ge=1)
    batch_pause_seconds: float = Field(default=0.1, ge=0)

    # Tabular files are chunked by rows instead of characters
    rows_per_chunk: int = Field(default=50, ge=1)

    # Derived Q/A generation
    qa_max_file_size: int = Field(default=100 * KIB, ge=0)
    qa_context_chunks: int = Field(default=3, ge=1)


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(env_prefix="OBS_")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: str | None = Field(default=None)


class Settings(BaseSettings):
    """
    Master settings aggregator.

    This is the single source of truth for all configuration.
    Sub-settings are composed here to maintain clear boundaries.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,  # Immutable after creation
    )

    # Application metadata
    app_name: str = Field(default="Quarry")
    app_version: str = Field(default="0.1.0")
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = Field(default=False)

    # API settings
    api_prefix: str = Field(default="/api/v1")
    cors_origins: list[str] = Field(default=["*"])

    # New chats are titled from the first N characters of the prompt
    chat_title_length: int = Field(default=50, ge=1, le=100)

    # Component settings (composed)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    vector_store: VectorStoreSettings = Field(default_factory=VectorStoreSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure only one settings instance exists.
    This is safe because settings are frozen/immutable.
    """
    return Settings()
