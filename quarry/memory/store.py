"""
Document Store

In-memory implementation of the chat/message/document database.

Design decisions:
- Implements DocumentStoreProtocol; a database-backed store can replace it
  without touching callers
- Records are pydantic models; updates replace the stored copy
- Not suitable for production as data is lost on restart
"""

from quarry.core.exceptions import ChatNotFoundError
from quarry.core.types import (
    ChatRecord,
    DocumentRecord,
    DocumentStatus,
    MessageRecord,
    MessageRole,
    utcnow,
)


class InMemoryDocumentStore:
    """
    In-memory store for development/testing.

    Chats are only visible to the user and organization that own them.
    """

    def __init__(self):
        self._documents: dict[str, DocumentRecord] = {}
        self._chats: dict[str, ChatRecord] = {}
        self._messages: dict[str, MessageRecord] = {}

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    async def find_documents_by_org(self, organization_id: str) -> list[DocumentRecord]:
        return [
            doc
            for doc in self._documents.values()
            if doc.organization_id == organization_id and doc.status == DocumentStatus.ACTIVE
        ]

    async def get_document(self, document_id: str) -> DocumentRecord | None:
        return self._documents.get(document_id)

    async def create_document(self, document: DocumentRecord) -> DocumentRecord:
        self._documents[document.id] = document
        return document

    async def delete_document(self, document_id: str) -> bool:
        if document_id in self._documents:
            del self._documents[document_id]
            return True
        return False

    # -------------------------------------------------------------------------
    # Chats and messages
    # -------------------------------------------------------------------------

    async def find_chat_by_id_and_user(
        self,
        chat_id: str,
        user_id: str,
        organization_id: str,
    ) -> ChatRecord | None:
        chat = self._chats.get(chat_id)
        if chat is None:
            return None
        if chat.user_id != user_id or chat.organization_id != organization_id:
            return None
        return chat

    async def create_chat(
        self,
        organization_id: str,
        user_id: str,
        title: str,
    ) -> ChatRecord:
        chat = ChatRecord(
            organization_id=organization_id,
            user_id=user_id,
            title=title[:100] or "New Chat",
        )
        self._chats[chat.id] = chat
        return chat

    async def create_message(
        self,
        chat_id: str,
        role: MessageRole,
        content: str,
    ) -> MessageRecord:
        if chat_id not in self._chats:
            raise ChatNotFoundError(f"Chat {chat_id} not found", context={"chat_id": chat_id})

        message = MessageRecord(chat_id=chat_id, role=role, content=content)
        self._messages[message.id] = message
        return message

    async def append_message_to_chat(self, chat_id: str, message_id: str) -> ChatRecord | None:
        chat = self._chats.get(chat_id)
        if chat is None:
            return None

        updated = chat.model_copy(
            update={"messages": [*chat.messages, message_id], "updated_at": utcnow()}
        )
        self._chats[chat_id] = updated
        return updated

    async def list_messages(self, chat_id: str) -> list[MessageRecord]:
        chat = self._chats.get(chat_id)
        if chat is None:
            return []
        return [self._messages[mid] for mid in chat.messages if mid in self._messages]

    async def list_chats(self, organization_id: str, user_id: str) -> list[ChatRecord]:
        chats = [
            chat
            for chat in self._chats.values()
            if chat.organization_id == organization_id and chat.user_id == user_id
        ]
        return sorted(chats, key=lambda c: c.updated_at, reverse=True)
