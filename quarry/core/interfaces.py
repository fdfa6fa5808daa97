"""
Core Interfaces and Protocols

Defines the contracts between Quarry and its external collaborators.
All cross-module interactions should use these interfaces.

Design decisions:
- Protocol-based for structural subtyping
- Minimal interface surface
- No implementation details leak through
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol, runtime_checkable

from quarry.core.types import (
    ChatRecord,
    DocumentRecord,
    MessageRecord,
    MessageRole,
)

# Invoked once per generated token, in order
TokenCallback = Callable[[str], Awaitable[None] | None]


# =============================================================================
# GENERATION BACKEND PROTOCOL
# =============================================================================

@runtime_checkable
class GenerationBackendProtocol(Protocol):
    """
    Interface for text-generation backends.

    Implemented by: OpenAIAdapter, OllamaAdapter, StubLLMAdapter
    Used by: GenerationOrchestrator, QAGenerator
    """

    @property
    def model(self) -> str:
        """Current model identifier."""
        ...

    def stream(self, prompt: str) -> AsyncIterator[str]:
        """
        Stream tokens for an augmented prompt.

        Raises LLMConnectionError before the first token if the
        backend cannot be reached. Cancelling the consuming task
        aborts the underlying request.
        """
        ...

    async def complete(self, prompt: str, *, max_tokens: int | None = None) -> str:
        """Generate a full (non-streamed) response."""
        ...


# =============================================================================
# EMBEDDING PROVIDER PROTOCOL
# =============================================================================

@runtime_checkable
class EmbeddingProviderProtocol(Protocol):
    """
    Interface for remote embedding capabilities.

    Implemented by: OpenAIEmbeddings, OllamaEmbeddings, StubEmbeddings
    Used by: EmbeddingGateway (which makes failures non-fatal)
    """

    @property
    def name(self) -> str:
        ...

    async def embed(self, text: str) -> list[float]:
        """Embed one text. May raise on any failure."""
        ...


# =============================================================================
# TEXT EXTRACTION PROTOCOL
# =============================================================================

@runtime_checkable
class TextExtractorProtocol(Protocol):
    """
    Interface for raw file-format extraction.

    Implemented by: TextExtractor
    Used by: IngestionPipeline
    """

    def supports(self, mime_type: str) -> bool:
        ...

    def is_tabular(self, mime_type: str) -> bool:
        ...

    def extract(self, data: bytes, mime_type: str) -> str:
        """Extract plain text. Raises ExtractionError on failure."""
        ...

    def extract_rows(self, data: bytes, mime_type: str) -> list[dict[str, str]]:
        """Extract tabular rows keyed by header. Raises ExtractionError."""
        ...


# =============================================================================
# DOCUMENT STORE PROTOCOL
# =============================================================================

@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """
    Interface for the external chat/message/document database.

    Implemented by: InMemoryDocumentStore
    Used by: GenerationOrchestrator, IngestionPipeline
    """

    async def find_documents_by_org(self, organization_id: str) -> list[DocumentRecord]:
        ...

    async def get_document(self, document_id: str) -> DocumentRecord | None:
        ...

    async def create_document(self, document: DocumentRecord) -> DocumentRecord:
        ...

    async def delete_document(self, document_id: str) -> bool:
        ...

    async def find_chat_by_id_and_user(
        self,
        chat_id: str,
        user_id: str,
        organization_id: str,
    ) -> ChatRecord | None:
        ...

    async def create_chat(
        self,
        organization_id: str,
        user_id: str,
        title: str,
    ) -> ChatRecord:
        ...

    async def create_message(
        self,
        chat_id: str,
        role: MessageRole,
        content: str,
    ) -> MessageRecord:
        ...

    async def append_message_to_chat(self, chat_id: str, message_id: str) -> ChatRecord | None:
        ...

    async def list_messages(self, chat_id: str) -> list[MessageRecord]:
        ...

    async def list_chats(self, organization_id: str, user_id: str) -> list[ChatRecord]:
        ...
