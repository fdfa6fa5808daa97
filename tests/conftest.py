"""
Test Configuration

Shared fixtures and test utilities.

Everything runs offline: stub embeddings, the in-memory vector store,
the in-memory document store and a scripted generation backend.
"""

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from quarry.config.settings import (
    EmbeddingSettings,
    IngestionSettings,
    LLMSettings,
    ObservabilitySettings,
    Settings,
    VectorStoreSettings,
)
from quarry.knowledge.embeddings import EmbeddingGateway, StubEmbeddings
from quarry.knowledge.extraction import TextExtractor
from quarry.knowledge.ingestion import IngestionPipeline
from quarry.knowledge.retriever import ContextFusion, PromptAssembler
from quarry.knowledge.vector_store import InMemoryVectorStore, VectorStoreAdapter
from quarry.memory.store import InMemoryDocumentStore
from quarry.observability.logging import BufferHandler, LogLevel, configure_logging
from quarry.reasoning.llm.stub_adapter import ScriptedLLMAdapter
from quarry.reasoning.qa import QAGenerator
from quarry.runtime.orchestrator import GenerationOrchestrator

ORG_ID = "org1"
USER_ID = "user1"

DEFAULT_TOKENS = ["The ", "refund ", "window ", "is ", "thirty ", "days."]
DEFAULT_QA = "Question: How long is the refund window?\nAnswer: Thirty days."


@pytest.fixture(autouse=True)
def log_buffer() -> BufferHandler:
    """Route all log output into a buffer for the duration of a test."""
    buffer = BufferHandler(level=LogLevel.DEBUG)
    configure_logging(level=LogLevel.DEBUG, handlers=[buffer])
    yield buffer
    configure_logging(level=LogLevel.WARNING, handlers=[])


@pytest.fixture
def ingestion_settings() -> IngestionSettings:
    """Small chunks and no pauses so tests stay fast."""
    return IngestionSettings(chunk_size=200, chunk_overlap=20, batch_size=5, batch_pause_seconds=0)


@pytest.fixture
def settings(ingestion_settings) -> Settings:
    """Offline settings for the full stack."""
    return Settings(
        environment="development",
        embedding=EmbeddingSettings(provider="stub", dimension=32, timeout=1.0),
        llm=LLMSettings(provider="stub", stub_stream_delay_ms=0),
        vector_store=VectorStoreSettings(provider="memory", upsert_pause_seconds=0),
        ingestion=ingestion_settings,
        observability=ObservabilitySettings(log_level="DEBUG", log_format="text"),
    )


@pytest.fixture
def embeddings() -> StubEmbeddings:
    return StubEmbeddings(dimension=32)


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def adapter(vector_store) -> VectorStoreAdapter:
    return VectorStoreAdapter(vector_store, batch_size=10, pause_seconds=0)


@pytest.fixture
def gateway(embeddings) -> EmbeddingGateway:
    return EmbeddingGateway(embeddings, timeout=1.0)


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def backend() -> ScriptedLLMAdapter:
    """Scripted backend that streams DEFAULT_TOKENS and answers Q/A requests."""
    return ScriptedLLMAdapter(tokens=DEFAULT_TOKENS, completions=[DEFAULT_QA])


@pytest.fixture
def fusion(gateway, adapter) -> ContextFusion:
    return ContextFusion(gateway, adapter, default_k=5)


@pytest.fixture
def orchestrator(backend, fusion, document_store, gateway, adapter) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        backend=backend,
        fusion=fusion,
        document_store=document_store,
        gateway=gateway,
        adapter=adapter,
        assembler=PromptAssembler(),
    )


@pytest.fixture
def ingestion(gateway, adapter, document_store, backend, ingestion_settings) -> IngestionPipeline:
    return IngestionPipeline(
        extractor=TextExtractor(),
        gateway=gateway,
        adapter=adapter,
        document_store=document_store,
        qa_generator=QAGenerator(backend),
        settings=ingestion_settings,
    )


@pytest.fixture
def components(settings, backend, embeddings, vector_store, document_store):
    """Full component graph wired with the offline collaborators."""
    from quarry.runtime.factory import build_components

    return build_components(
        settings,
        backend=backend,
        embedding_provider=embeddings,
        vector_store=vector_store,
        document_store=document_store,
    )


@pytest.fixture
async def app(settings, components, log_buffer):
    """Create test application."""
    from quarry.api.app import create_app

    app = create_app(settings, components=components)
    # create_app installs console handlers; keep test output in the buffer
    configure_logging(level=LogLevel.DEBUG, handlers=[log_buffer])
    yield app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def tenant_headers() -> dict[str, str]:
    return {"X-Organization-Id": ORG_ID, "X-User-Id": USER_ID}


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
