"""
Core Types and Data Structures

Defines the fundamental types used throughout Quarry.
These are intentionally simple, immutable where possible, and serializable.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ContextSource(str, Enum):
    """Which collection a retrieved item came from."""

    KNOWLEDGE_BASE = "knowledge_base"
    CHAT_HISTORY = "chat_history"


class Chunk(BaseModel):
    """
    A bounded substring of a larger document.

    The unit of embedding and storage. Discarded once stored.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    source_id: str
    sequence_index: int


class StoredItem(BaseModel):
    """An embedded item persisted in exactly one collection."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    document: str
    embedding: list[float]
    metadata: dict[str, str | None] = Field(default_factory=dict)


class ContextItem(BaseModel):
    """
    A single query result.

    Lives only for the duration of one retrieval; never persisted.
    Lower distance means more similar; None means the store gave none.
    """

    id: str
    document: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    distance: float | None = None
    source: ContextSource


class QAPair(BaseModel):
    """A derived question/answer pair for an uploaded document."""

    question: str
    answer: str

    @property
    def is_complete(self) -> bool:
        return bool(self.question.strip() and self.answer.strip())

    def as_text(self) -> str:
        return f"Question: {self.question}\nAnswer: {self.answer}"


# =============================================================================
# Document store records
# =============================================================================


class ChatRecord(BaseModel):
    """A conversation owned by one user inside one organization."""

    id: str = Field(default_factory=new_id)
    organization_id: str
    user_id: str
    title: str = Field(default="New Chat", max_length=100)
    messages: list[str] = Field(default_factory=list)  # message ids, in order
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MessageRecord(BaseModel):
    """A persisted chat message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    chat_id: str
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class DocumentStatus(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class DocumentRecord(BaseModel):
    """
    Metadata for an uploaded document.

    vector_ids lists every StoredItem created for the document
    (chunks plus any derived Q/A item) so deletion can cascade.
    """

    id: str = Field(default_factory=new_id)
    organization_id: str
    uploaded_by: str
    filename: str
    doc_type: str
    status: DocumentStatus = DocumentStatus.ACTIVE
    vector_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
