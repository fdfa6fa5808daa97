"""
Runtime Factory

Assembles every component from one Settings value.

Backends are strategies chosen here, once, at startup. Nothing below
this module inspects configuration to decide which provider to call.
"""

from dataclasses import dataclass

from quarry.config.settings import (
    EmbeddingSettings,
    LLMSettings,
    Settings,
    VectorStoreSettings,
)
from quarry.core.exceptions import ConfigurationError
from quarry.core.interfaces import DocumentStoreProtocol, GenerationBackendProtocol
from quarry.knowledge.embeddings import (
    EmbeddingGateway,
    EmbeddingProvider,
    OllamaEmbeddings,
    OpenAIEmbeddings,
    StubEmbeddings,
)
from quarry.knowledge.extraction import TextExtractor
from quarry.knowledge.ingestion import IngestionPipeline
from quarry.knowledge.retriever import ContextFusion, PromptAssembler
from quarry.knowledge.vector_store import (
    ChromaVectorStore,
    InMemoryVectorStore,
    VectorStore,
    VectorStoreAdapter,
)
from quarry.memory.store import InMemoryDocumentStore
from quarry.observability.logging import get_logger
from quarry.reasoning.llm.ollama_adapter import OllamaAdapter
from quarry.reasoning.llm.openai_adapter import OpenAIAdapter
from quarry.reasoning.llm.stub_adapter import StubLLMAdapter
from quarry.reasoning.qa import QAGenerator
from quarry.runtime.orchestrator import GenerationOrchestrator

logger = get_logger(__name__)


def create_embedding_provider(settings: EmbeddingSettings) -> EmbeddingProvider:
    """Create the configured embedding provider."""
    if settings.provider == "openai":
        return OpenAIEmbeddings(
            api_key=settings.openai_api_key.get_secret_value() if settings.openai_api_key else None,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
        )
    if settings.provider == "ollama":
        return OllamaEmbeddings(
            endpoint=settings.ollama_endpoint,
            model=settings.ollama_model,
            timeout=settings.timeout,
        )
    if settings.provider == "stub":
        return StubEmbeddings(dimension=settings.dimension or 64)

    raise ConfigurationError(
        f"Unknown embedding provider: {settings.provider}",
        context={"provider": settings.provider},
    )


def create_generation_backend(settings: LLMSettings) -> GenerationBackendProtocol:
    """Create the configured generation backend."""
    if settings.provider == "openai":
        return OpenAIAdapter(settings)
    if settings.provider == "ollama":
        return OllamaAdapter(settings)
    if settings.provider == "stub":
        return StubLLMAdapter(
            model=settings.stub_model_name,
            stream_delay_ms=settings.stub_stream_delay_ms,
        )

    raise ConfigurationError(
        f"Unknown LLM provider: {settings.provider}",
        context={"provider": settings.provider},
    )


def create_vector_store(settings: VectorStoreSettings) -> VectorStore:
    """Create the configured vector store backend."""
    if settings.provider == "chroma":
        return ChromaVectorStore(url=settings.chroma_url)
    if settings.provider == "memory":
        return InMemoryVectorStore()

    raise ConfigurationError(
        f"Unknown vector store provider: {settings.provider}",
        context={"provider": settings.provider},
    )


@dataclass
class Components:
    """Everything a running process needs, wired together."""

    settings: Settings
    backend: GenerationBackendProtocol
    gateway: EmbeddingGateway
    adapter: VectorStoreAdapter
    document_store: DocumentStoreProtocol
    fusion: ContextFusion
    orchestrator: GenerationOrchestrator
    ingestion: IngestionPipeline

    async def close(self) -> None:
        """Release network clients."""
        await self.gateway.close()
        await self.adapter.close()
        close = getattr(self.backend, "close", None)
        if close is not None:
            await close()


def build_components(
    settings: Settings,
    *,
    backend: GenerationBackendProtocol | None = None,
    embedding_provider: EmbeddingProvider | None = None,
    vector_store: VectorStore | None = None,
    document_store: DocumentStoreProtocol | None = None,
) -> Components:
    """
    Build all components from settings.

    Any collaborator passed explicitly replaces the configured one,
    which is how tests run the full stack offline.
    """
    backend = backend or create_generation_backend(settings.llm)
    gateway = EmbeddingGateway.from_settings(
        embedding_provider or create_embedding_provider(settings.embedding),
        settings.embedding,
    )
    adapter = VectorStoreAdapter.from_settings(
        vector_store or create_vector_store(settings.vector_store),
        settings.vector_store,
    )
    document_store = document_store or InMemoryDocumentStore()

    fusion = ContextFusion(gateway, adapter, default_k=settings.vector_store.default_top_k)

    orchestrator = GenerationOrchestrator(
        backend=backend,
        fusion=fusion,
        document_store=document_store,
        gateway=gateway,
        adapter=adapter,
        assembler=PromptAssembler(),
        chat_title_length=settings.chat_title_length,
    )

    ingestion = IngestionPipeline(
        extractor=TextExtractor(),
        gateway=gateway,
        adapter=adapter,
        document_store=document_store,
        qa_generator=QAGenerator(backend, max_tokens=settings.llm.qa_max_tokens),
        settings=settings.ingestion,
    )

    logger.info(
        "Components built",
        llm_provider=settings.llm.provider,
        embedding_provider=gateway.provider.name,
        vector_store=type(adapter.store).__name__,
    )

    return Components(
        settings=settings,
        backend=backend,
        gateway=gateway,
        adapter=adapter,
        document_store=document_store,
        fusion=fusion,
        orchestrator=orchestrator,
        ingestion=ingestion,
    )
