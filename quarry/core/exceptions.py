"""
Exception Hierarchy

Defines all exceptions used in Quarry.
Exceptions are organized by domain and include context for debugging.

Design decisions:
- All exceptions inherit from QuarryError for easy catching
- Exceptions carry structured context, not just messages
- Error codes enable programmatic handling
- Validation errors are raised before any side effect happens
"""

from typing import Any


class QuarryError(Exception):
    """
    Base exception for all Quarry errors.

    Provides structured error information including:
    - Human-readable message
    - Machine-readable error code
    - Additional context for debugging
    """

    error_code: str = "QUARRY_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.error_code
        self.context = context or {}
        self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "context": self.context,
        }


# ============================================================
# Configuration Errors
# ============================================================

class ConfigurationError(QuarryError):
    """Error in configuration or settings."""

    error_code = "CONFIGURATION_ERROR"


# ============================================================
# Validation Errors
# ============================================================

class ValidationError(QuarryError):
    """Request rejected before any side effect."""

    error_code = "VALIDATION_ERROR"


class EmptyPromptError(ValidationError):
    """Prompt is missing or blank."""

    error_code = "EMPTY_PROMPT"


class FileTooLargeError(ValidationError):
    """Uploaded file exceeds the size limit."""

    error_code = "FILE_TOO_LARGE"

    def __init__(
        self,
        message: str,
        *,
        max_size: int,
        actual_size: int,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.max_size = max_size
        self.actual_size = actual_size


class UnsupportedMimeTypeError(ValidationError):
    """No extractor exists for the uploaded file's type."""

    error_code = "UNSUPPORTED_MIME_TYPE"


class DuplicateDocumentError(ValidationError):
    """The organization already has a document with this filename."""

    error_code = "DUPLICATE_DOCUMENT"


# ============================================================
# Backend Errors
# ============================================================

class BackendError(QuarryError):
    """Base error for remote generation/embedding backends."""

    error_code = "BACKEND_ERROR"


class LLMError(BackendError):
    """Base error for generation backend issues."""

    error_code = "LLM_ERROR"


class LLMConnectionError(LLMError):
    """Failed to open a connection to the generation backend."""

    error_code = "LLM_CONNECTION_ERROR"


class LLMTimeoutError(LLMError):
    """Generation request timed out."""

    error_code = "LLM_TIMEOUT"


class LLMResponseError(LLMError):
    """Invalid or unexpected response from the generation backend."""

    error_code = "LLM_RESPONSE_ERROR"


class EmbeddingError(BackendError):
    """Error generating embeddings."""

    error_code = "EMBEDDING_ERROR"


# ============================================================
# Knowledge / RAG Errors
# ============================================================

class KnowledgeError(QuarryError):
    """Base error for knowledge/RAG issues."""

    error_code = "KNOWLEDGE_ERROR"


class ExtractionError(KnowledgeError):
    """A file could not be converted to text."""

    error_code = "EXTRACTION_ERROR"


class VectorStoreError(KnowledgeError):
    """Error with vector store operations."""

    error_code = "VECTOR_STORE_ERROR"


# ============================================================
# Document Store Errors
# ============================================================

class DocumentStoreError(QuarryError):
    """Base error for the chat/message/document store."""

    error_code = "DOCUMENT_STORE_ERROR"


class DocumentNotFoundError(DocumentStoreError):
    """Document does not exist for this organization."""

    error_code = "DOCUMENT_NOT_FOUND"


class ChatNotFoundError(DocumentStoreError):
    """Chat does not exist or belongs to another user."""

    error_code = "CHAT_NOT_FOUND"
