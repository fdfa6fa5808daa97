"""
Core Module

Contains fundamental types, exceptions, and interfaces used across
all other modules in Quarry.

The interfaces module defines protocols for the external collaborators,
preventing circular dependencies.
"""

from quarry.core.exceptions import (
    BackendError,
    ChatNotFoundError,
    ConfigurationError,
    DocumentNotFoundError,
    DocumentStoreError,
    DuplicateDocumentError,
    EmbeddingError,
    EmptyPromptError,
    ExtractionError,
    FileTooLargeError,
    KnowledgeError,
    LLMConnectionError,
    LLMError,
    LLMResponseError,
    LLMTimeoutError,
    QuarryError,
    UnsupportedMimeTypeError,
    ValidationError,
    VectorStoreError,
)
from quarry.core.interfaces import (
    DocumentStoreProtocol,
    EmbeddingProviderProtocol,
    GenerationBackendProtocol,
    TextExtractorProtocol,
    TokenCallback,
)
from quarry.core.types import (
    ChatRecord,
    Chunk,
    ContextItem,
    ContextSource,
    DocumentRecord,
    DocumentStatus,
    MessageRecord,
    MessageRole,
    QAPair,
    StoredItem,
)

__all__ = [
    # Types
    "ChatRecord",
    "Chunk",
    "ContextItem",
    "ContextSource",
    "DocumentRecord",
    "DocumentStatus",
    "MessageRecord",
    "MessageRole",
    "QAPair",
    "StoredItem",
    # Exceptions
    "BackendError",
    "ChatNotFoundError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "DocumentStoreError",
    "DuplicateDocumentError",
    "EmbeddingError",
    "EmptyPromptError",
    "ExtractionError",
    "FileTooLargeError",
    "KnowledgeError",
    "LLMConnectionError",
    "LLMError",
    "LLMResponseError",
    "LLMTimeoutError",
    "QuarryError",
    "UnsupportedMimeTypeError",
    "ValidationError",
    "VectorStoreError",
    # Interfaces/Protocols
    "DocumentStoreProtocol",
    "EmbeddingProviderProtocol",
    "GenerationBackendProtocol",
    "TextExtractorProtocol",
    "TokenCallback",
]
