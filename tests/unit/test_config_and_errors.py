"""
Unit Tests - Configuration, Errors and Wiring
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from quarry.config.settings import (
    EmbeddingSettings,
    LLMSettings,
    Settings,
    VectorStoreSettings,
    get_settings,
)
from quarry.core.exceptions import (
    DuplicateDocumentError,
    FileTooLargeError,
    LLMConnectionError,
    QuarryError,
    ValidationError,
)
from quarry.knowledge.embeddings import OllamaEmbeddings, StubEmbeddings
from quarry.knowledge.vector_store import ChromaVectorStore, InMemoryVectorStore
from quarry.reasoning.llm.ollama_adapter import OllamaAdapter
from quarry.reasoning.llm.stub_adapter import StubLLMAdapter
from quarry.runtime.factory import (
    create_embedding_provider,
    create_generation_backend,
    create_vector_store,
)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test defaults match the documented limits."""
        settings = Settings()

        assert settings.ingestion.max_file_size == 10 * 1024 * 1024
        assert settings.ingestion.batch_size == 5
        assert settings.ingestion.qa_max_file_size == 100 * 1024
        assert settings.ingestion.qa_context_chunks == 3
        assert settings.embedding.max_chars == 4000
        assert settings.embedding.timeout == 20.0
        assert settings.vector_store.upsert_batch_size == 10
        assert settings.vector_store.max_query_results == 10
        assert settings.llm.max_tokens == 2000
        assert settings.llm.qa_max_tokens == 300

    def test_env_override(self, monkeypatch):
        """Test section env prefixes."""
        monkeypatch.setenv("LLM_PROVIDER", "stub")
        monkeypatch.setenv("VECTOR_PROVIDER", "memory")
        monkeypatch.setenv("INGEST_CHUNK_SIZE", "500")

        settings = Settings()

        assert settings.llm.provider == "stub"
        assert settings.vector_store.provider == "memory"
        assert settings.ingestion.chunk_size == 500

    def test_frozen(self):
        settings = Settings()
        with pytest.raises(PydanticValidationError):
            settings.debug = True

    def test_invalid_provider_rejected(self):
        with pytest.raises(PydanticValidationError):
            LLMSettings(provider="nope")

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_to_dict(self):
        error = DuplicateDocumentError("exists", context={"filename": "a.txt"})

        assert error.to_dict() == {
            "error": "DUPLICATE_DOCUMENT",
            "message": "exists",
            "context": {"filename": "a.txt"},
        }
        assert isinstance(error, ValidationError)
        assert isinstance(error, QuarryError)

    def test_cause_chained(self):
        cause = OSError("refused")
        error = LLMConnectionError("cannot connect", cause=cause)

        assert error.__cause__ is cause
        assert error.code == "LLM_CONNECTION_ERROR"

    def test_file_too_large_carries_sizes(self):
        error = FileTooLargeError("too big", max_size=10, actual_size=20)
        assert (error.max_size, error.actual_size) == (10, 20)


class TestFactory:
    """Tests for provider selection."""

    def test_embedding_providers(self):
        assert isinstance(create_embedding_provider(EmbeddingSettings(provider="stub", dimension=8)), StubEmbeddings)
        assert isinstance(create_embedding_provider(EmbeddingSettings(provider="ollama")), OllamaEmbeddings)

    def test_generation_backends(self):
        assert isinstance(create_generation_backend(LLMSettings(provider="stub")), StubLLMAdapter)
        assert isinstance(create_generation_backend(LLMSettings(provider="ollama")), OllamaAdapter)

    def test_vector_stores(self):
        assert isinstance(create_vector_store(VectorStoreSettings(provider="memory")), InMemoryVectorStore)
        assert isinstance(create_vector_store(VectorStoreSettings(provider="chroma")), ChromaVectorStore)

    @pytest.mark.asyncio
    async def test_build_components(self, components, backend):
        """Test overrides replace configured collaborators."""
        assert components.backend is backend
        assert components.gateway.provider.name == "stub"
        await components.close()
