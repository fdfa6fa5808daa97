"""
Unit Tests - Document Store
"""

import pytest

from quarry.core.exceptions import ChatNotFoundError
from quarry.core.interfaces import DocumentStoreProtocol
from quarry.core.types import DocumentRecord, MessageRole
from quarry.memory.store import InMemoryDocumentStore


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


class TestChats:
    """Tests for chats and messages."""

    def test_satisfies_protocol(self, store):
        assert isinstance(store, DocumentStoreProtocol)

    @pytest.mark.asyncio
    async def test_chat_scoped_to_user_and_org(self, store):
        """Test chats are only found by their owner."""
        chat = await store.create_chat("org1", "user1", "Refunds")

        assert await store.find_chat_by_id_and_user(chat.id, "user1", "org1") == chat
        assert await store.find_chat_by_id_and_user(chat.id, "user2", "org1") is None
        assert await store.find_chat_by_id_and_user(chat.id, "user1", "org2") is None
        assert await store.find_chat_by_id_and_user("missing", "user1", "org1") is None

    @pytest.mark.asyncio
    async def test_messages_appended_in_order(self, store):
        chat = await store.create_chat("org1", "user1", "Refunds")

        for role, content in [(MessageRole.USER, "hi"), (MessageRole.ASSISTANT, "hello")]:
            message = await store.create_message(chat.id, role, content)
            await store.append_message_to_chat(chat.id, message.id)

        messages = await store.list_messages(chat.id)
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.USER, "hi"),
            (MessageRole.ASSISTANT, "hello"),
        ]

    @pytest.mark.asyncio
    async def test_message_for_missing_chat(self, store):
        with pytest.raises(ChatNotFoundError):
            await store.create_message("missing", MessageRole.USER, "hi")

    @pytest.mark.asyncio
    async def test_long_title_truncated(self, store):
        chat = await store.create_chat("org1", "user1", "x" * 300)
        assert len(chat.title) == 100


class TestDocuments:
    """Tests for document records."""

    @pytest.mark.asyncio
    async def test_find_by_org(self, store):
        doc = await store.create_document(
            DocumentRecord(organization_id="org1", uploaded_by="user1", filename="a.txt", doc_type="txt")
        )
        await store.create_document(
            DocumentRecord(organization_id="org2", uploaded_by="user9", filename="b.txt", doc_type="txt")
        )

        assert await store.find_documents_by_org("org1") == [doc]

    @pytest.mark.asyncio
    async def test_delete(self, store):
        doc = await store.create_document(
            DocumentRecord(organization_id="org1", uploaded_by="user1", filename="a.txt", doc_type="txt")
        )

        assert await store.delete_document(doc.id) is True
        assert await store.delete_document(doc.id) is False
        assert await store.get_document(doc.id) is None
