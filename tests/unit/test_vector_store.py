"""
Unit Tests - Vector Store

Tests for collection naming, the in-memory backend, the Chroma backend
and the adapter's failure policy.
"""

from typing import Any

import pytest

from quarry.core.exceptions import VectorStoreError
from quarry.core.types import ContextSource, StoredItem
from quarry.knowledge.vector_store import (
    ChromaVectorStore,
    InMemoryVectorStore,
    VectorStore,
    VectorStoreAdapter,
    org_documents_collection,
    user_chats_collection,
)
from quarry.observability.logging import LogLevel


def make_item(text: str, embedding: list[float], **metadata: str) -> StoredItem:
    return StoredItem(document=text, embedding=embedding, metadata=metadata)


class RecordingStore(InMemoryVectorStore):
    """In-memory store that records batch sizes and can fail on demand."""

    def __init__(self, fail_add: bool = False, fail_query: bool = False, fail_delete: bool = False):
        super().__init__()
        self.batches: list[int] = []
        self.query_sizes: list[int] = []
        self.fail_add = fail_add
        self.fail_query = fail_query
        self.fail_delete = fail_delete

    async def add(self, collection, items):
        if self.fail_add:
            raise ConnectionError("store offline")
        self.batches.append(len(items))
        await super().add(collection, items)

    async def query(self, collection, embedding, n_results):
        if self.fail_query:
            raise ConnectionError("store offline")
        self.query_sizes.append(n_results)
        return await super().query(collection, embedding, n_results)

    async def delete(self, collection, ids):
        if self.fail_delete:
            raise ConnectionError("store offline")
        await super().delete(collection, ids)


class TestCollectionNaming:
    """Tests for tenant collection names."""

    def test_names(self):
        """Test names are a pure function of the tenant id."""
        assert org_documents_collection("acme") == "org_acme_docs"
        assert user_chats_collection("u42") == "user_u42_chats"


class TestInMemoryVectorStore:
    """Tests for InMemoryVectorStore."""

    @pytest.mark.asyncio
    async def test_query_orders_by_distance(self):
        """Test the closest item comes first."""
        store = InMemoryVectorStore()
        await store.add(
            "c",
            [
                make_item("far", [0.0, 1.0], id="far"),
                make_item("near", [1.0, 0.1], id="near"),
            ],
        )

        results = await store.query("c", [1.0, 0.0], 2)

        assert [r.document for r in results] == ["near", "far"]
        assert results[0].distance < results[1].distance

    @pytest.mark.asyncio
    async def test_collections_are_isolated(self):
        """Test items never leak across collections."""
        store = InMemoryVectorStore()
        await store.add("org_a_docs", [make_item("secret", [1.0])])

        assert await store.query("org_b_docs", [1.0], 5) == []
        assert await store.count("org_a_docs") == 1

    @pytest.mark.asyncio
    async def test_delete_and_get(self):
        """Test deleted items are gone."""
        store = InMemoryVectorStore()
        keep, drop = make_item("keep", [1.0]), make_item("drop", [1.0])
        await store.add("c", [keep, drop])

        await store.delete("c", [drop.id, "missing"])

        assert await store.get("c", [keep.id, drop.id]) == [keep]


class FakeChromaCollection:
    def __init__(self):
        self.rows: dict[str, dict[str, Any]] = {}

    def upsert(self, ids, embeddings, documents, metadatas):
        for i, id in enumerate(ids):
            self.rows[id] = {
                "embedding": embeddings[i],
                "document": documents[i],
                "metadata": metadatas[i],
            }

    def count(self):
        return len(self.rows)

    def query(self, query_embeddings, n_results, include):
        ids = list(self.rows)[:n_results]
        return {
            "ids": [ids],
            "documents": [[self.rows[i]["document"] for i in ids]],
            "metadatas": [[self.rows[i]["metadata"] for i in ids]],
            "distances": [[0.1 * n for n in range(len(ids))]],
        }

    def delete(self, ids):
        for id in ids:
            self.rows.pop(id, None)

    def get(self, ids, include):
        found = [i for i in ids if i in self.rows]
        return {
            "ids": found,
            "documents": [self.rows[i]["document"] for i in found],
            "metadatas": [self.rows[i]["metadata"] for i in found],
            "embeddings": [self.rows[i]["embedding"] for i in found],
        }


class FakeChromaClient:
    def __init__(self):
        self.collections: dict[str, FakeChromaCollection] = {}
        self.created_with: dict[str, dict] = {}

    def get_or_create_collection(self, name, metadata=None):
        self.created_with.setdefault(name, metadata)
        return self.collections.setdefault(name, FakeChromaCollection())


class TestChromaVectorStore:
    """Tests for ChromaVectorStore against a fake client."""

    @pytest.mark.asyncio
    async def test_upsert_query_roundtrip(self):
        """Test items are stored with cosine space and found again."""
        client = FakeChromaClient()
        store = ChromaVectorStore(client=client)
        item = make_item("hello", [1.0, 0.0], filename="a.txt", uploaded_by=None)

        await store.add("org_o_docs", [item])
        results = await store.query("org_o_docs", [1.0, 0.0], 5)

        assert client.created_with["org_o_docs"] == {"hnsw:space": "cosine"}
        assert [r.id for r in results] == [item.id]
        assert results[0].metadata == {"filename": "a.txt"}
        assert results[0].distance == 0.0

    @pytest.mark.asyncio
    async def test_query_on_empty_collection(self):
        """Test an empty collection returns no results instead of erroring."""
        store = ChromaVectorStore(client=FakeChromaClient())
        assert await store.query("org_o_docs", [1.0], 5) == []

    @pytest.mark.asyncio
    async def test_delete(self):
        """Test delete removes the ids."""
        store = ChromaVectorStore(client=FakeChromaClient())
        item = make_item("hello", [1.0])
        await store.add("c", [item])

        await store.delete("c", [item.id])

        assert await store.count("c") == 0
        assert await store.get("c", [item.id]) == []


class TestVectorStoreAdapter:
    """Tests for VectorStoreAdapter."""

    @pytest.mark.asyncio
    async def test_upsert_in_sub_batches(self):
        """Test large upserts are split into batch_size pieces."""
        store = RecordingStore()
        adapter = VectorStoreAdapter(store, batch_size=10, pause_seconds=0)

        await adapter.upsert("c", [make_item(f"t{i}", [1.0]) for i in range(25)])

        assert store.batches == [10, 10, 5]
        assert await adapter.count("c") == 25

    @pytest.mark.asyncio
    async def test_upsert_failure_raises(self, log_buffer):
        """Test backend failures surface as VectorStoreError."""
        adapter = VectorStoreAdapter(RecordingStore(fail_add=True), pause_seconds=0)

        with pytest.raises(VectorStoreError):
            await adapter.upsert("c", [make_item("t", [1.0])])
        assert "Vector upsert failed" in log_buffer.messages(LogLevel.ERROR)

    @pytest.mark.asyncio
    async def test_query_clamps_k(self):
        """Test k above the maximum is clamped."""
        store = RecordingStore()
        adapter = VectorStoreAdapter(store, pause_seconds=0, max_query_results=10)
        await store.add("c", [make_item(f"t{i}", [1.0, float(i)]) for i in range(20)])

        results = await adapter.query("c", [1.0, 0.0], 50, ContextSource.KNOWLEDGE_BASE)

        assert store.query_sizes == [10]
        assert len(results) == 10
        assert all(r.source == ContextSource.KNOWLEDGE_BASE for r in results)

    @pytest.mark.asyncio
    async def test_query_failure_returns_empty(self):
        """Test query failures degrade to no results."""
        adapter = VectorStoreAdapter(RecordingStore(fail_query=True))
        assert await adapter.query("c", [1.0], 5, ContextSource.CHAT_HISTORY) == []

    @pytest.mark.asyncio
    async def test_query_missing_collection(self):
        """Test querying a collection that was never written is empty."""
        adapter = VectorStoreAdapter(InMemoryVectorStore())
        assert await adapter.query("user_nobody_chats", [1.0], 5, ContextSource.CHAT_HISTORY) == []

    @pytest.mark.asyncio
    async def test_delete_failure_raises(self):
        """Test delete failures surface as VectorStoreError."""
        adapter = VectorStoreAdapter(RecordingStore(fail_delete=True))
        with pytest.raises(VectorStoreError):
            await adapter.delete("c", ["x"])

    @pytest.mark.asyncio
    async def test_delete_nothing_is_noop(self):
        """Test an empty id list never reaches the backend."""
        adapter = VectorStoreAdapter(RecordingStore(fail_delete=True))
        await adapter.delete("c", [])

    def test_invalid_batch_size(self):
        """Test batch_size must be positive."""
        with pytest.raises(ValueError):
            VectorStoreAdapter(InMemoryVectorStore(), batch_size=0)

    def test_backends_share_interface(self):
        """Test both backends implement VectorStore."""
        assert isinstance(InMemoryVectorStore(), VectorStore)
        assert isinstance(ChromaVectorStore(client=FakeChromaClient()), VectorStore)
