"""
Vector Store Abstraction

Store and search vector embeddings in tenant-scoped collections.
Supports Chroma and an in-memory backend.

Design decisions:
- Abstract interface for backend independence
- Collection names are a pure function of tenant ids
- Cosine distance everywhere (lower = more similar)
- The adapter owns batching, result clamping and failure policy;
  backends stay thin
"""

import asyncio
import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from quarry.config.settings import VectorStoreSettings
from quarry.core.exceptions import VectorStoreError
from quarry.core.types import ContextItem, ContextSource, StoredItem
from quarry.observability.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Collection naming
# =============================================================================


def org_documents_collection(organization_id: str) -> str:
    """Collection holding an organization's uploaded document chunks."""
    return f"org_{organization_id}_docs"


def user_chats_collection(user_id: str) -> str:
    """Collection holding a user's embedded conversation history."""
    return f"user_{user_id}_chats"


# =============================================================================
# Backends
# =============================================================================


@dataclass
class VectorSearchResult:
    """Result from vector search."""

    id: str
    document: str
    metadata: dict[str, Any] = field(default_factory=dict)
    distance: float | None = None


class VectorStore(ABC):
    """
    Abstract vector store interface.

    Every operation names the collection it acts on. Collections are
    created on first write.
    """

    @abstractmethod
    async def add(self, collection: str, items: Sequence[StoredItem]) -> None:
        """Insert or replace items."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        embedding: list[float],
        n_results: int,
    ) -> list[VectorSearchResult]:
        """Return up to n_results nearest items, closest first."""

    @abstractmethod
    async def delete(self, collection: str, ids: Sequence[str]) -> None:
        """Delete items by id. Unknown ids are ignored."""

    @abstractmethod
    async def get(self, collection: str, ids: Sequence[str]) -> list[StoredItem]:
        """Fetch the items that exist among ids."""

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Number of items in a collection (0 if it does not exist)."""

    async def close(self) -> None:
        """Release client resources."""


def _cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 1.0
    return 1.0 - dot / (norm_a * norm_b)


class InMemoryVectorStore(VectorStore):
    """
    Simple in-memory vector store for testing.

    Uses brute-force search. Not suitable for production.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, StoredItem]] = {}

    @property
    def collections(self) -> list[str]:
        return list(self._collections)

    async def add(self, collection: str, items: Sequence[StoredItem]) -> None:
        bucket = self._collections.setdefault(collection, {})
        for item in items:
            bucket[item.id] = item

    async def query(
        self,
        collection: str,
        embedding: list[float],
        n_results: int,
    ) -> list[VectorSearchResult]:
        bucket = self._collections.get(collection, {})
        scored = [
            (_cosine_distance(embedding, item.embedding), item) for item in bucket.values()
        ]
        scored.sort(key=lambda pair: pair[0])

        return [
            VectorSearchResult(
                id=item.id,
                document=item.document,
                metadata=dict(item.metadata),
                distance=distance,
            )
            for distance, item in scored[:n_results]
        ]

    async def delete(self, collection: str, ids: Sequence[str]) -> None:
        bucket = self._collections.get(collection)
        if not bucket:
            return
        for id in ids:
            bucket.pop(id, None)

    async def get(self, collection: str, ids: Sequence[str]) -> list[StoredItem]:
        bucket = self._collections.get(collection, {})
        return [bucket[id] for id in ids if id in bucket]

    async def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))


class ChromaVectorStore(VectorStore):
    """
    ChromaDB-backed store.

    The chromadb client is synchronous; every call is pushed to a worker
    thread so the event loop keeps serving other requests.
    """

    def __init__(self, url: str = "http://localhost:8000", client: Any | None = None):
        self._url = url
        self._client = client

    def _get_client(self):
        if self._client is None:
            try:
                import chromadb
            except ImportError:
                raise ImportError("chromadb package required. Install with: pip install chromadb")

            parts = urlsplit(self._url)
            ssl = parts.scheme == "https"
            self._client = chromadb.HttpClient(
                host=parts.hostname or "localhost",
                port=parts.port or (443 if ssl else 8000),
                ssl=ssl,
            )
        return self._client

    def _collection(self, name: str):
        return self._get_client().get_or_create_collection(
            name=name,
            metadata={"hnsw:space": "cosine"},
        )

    @staticmethod
    def _clean_metadata(metadata: dict[str, str | None]) -> dict[str, str]:
        # Chroma rejects None values
        return {k: v for k, v in metadata.items() if v is not None}

    async def add(self, collection: str, items: Sequence[StoredItem]) -> None:
        if not items:
            return

        def _add() -> None:
            self._collection(collection).upsert(
                ids=[item.id for item in items],
                embeddings=[item.embedding for item in items],
                documents=[item.document for item in items],
                metadatas=[self._clean_metadata(item.metadata) or None for item in items],
            )

        await asyncio.to_thread(_add)

    async def query(
        self,
        collection: str,
        embedding: list[float],
        n_results: int,
    ) -> list[VectorSearchResult]:
        def _query() -> dict[str, Any] | None:
            coll = self._collection(collection)
            available = coll.count()
            if available == 0:
                return None
            return coll.query(
                query_embeddings=[embedding],
                n_results=min(n_results, available),
                include=["documents", "metadatas", "distances"],
            )

        results = await asyncio.to_thread(_query)
        if not results or not results.get("ids") or not results["ids"][0]:
            return []

        # Chroma returns lists of lists (one per query embedding)
        ids = results["ids"][0]
        documents = (results.get("documents") or [[]])[0] or []
        metadatas = (results.get("metadatas") or [[]])[0] or []
        distances = (results.get("distances") or [[]])[0] or []

        output = []
        for i, id in enumerate(ids):
            output.append(
                VectorSearchResult(
                    id=id,
                    document=documents[i] if i < len(documents) and documents[i] else "",
                    metadata=dict(metadatas[i] or {}) if i < len(metadatas) else {},
                    distance=distances[i] if i < len(distances) else None,
                )
            )
        return output

    async def delete(self, collection: str, ids: Sequence[str]) -> None:
        if not ids:
            return
        await asyncio.to_thread(lambda: self._collection(collection).delete(ids=list(ids)))

    async def get(self, collection: str, ids: Sequence[str]) -> list[StoredItem]:
        if not ids:
            return []

        def _get() -> dict[str, Any]:
            return self._collection(collection).get(
                ids=list(ids),
                include=["documents", "metadatas", "embeddings"],
            )

        results = await asyncio.to_thread(_get)
        found_ids = results.get("ids") or []
        documents = results.get("documents")
        metadatas = results.get("metadatas")
        embeddings = results.get("embeddings")

        items = []
        for i, id in enumerate(found_ids):
            items.append(
                StoredItem(
                    id=id,
                    document=(documents[i] if documents is not None else None) or "",
                    embedding=[float(v) for v in embeddings[i]] if embeddings is not None else [],
                    metadata=dict((metadatas[i] if metadatas is not None else None) or {}),
                )
            )
        return items

    async def count(self, collection: str) -> int:
        return await asyncio.to_thread(lambda: self._collection(collection).count())


# =============================================================================
# Adapter
# =============================================================================


class VectorStoreAdapter:
    """
    Per-collection upsert/query wrapper with the system's failure policy.

    - upsert: sub-batches with a pause between them; failures raise
      VectorStoreError so the caller decides whether to skip or abort
    - query: k clamped to max_query_results; failures degrade to []
    - delete: failures raise VectorStoreError
    """

    def __init__(
        self,
        store: VectorStore,
        batch_size: int = 10,
        pause_seconds: float = 0.1,
        max_query_results: int = 10,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._store = store
        self._batch_size = batch_size
        self._pause = pause_seconds
        self._max_results = max_query_results

    @classmethod
    def from_settings(cls, store: VectorStore, settings: VectorStoreSettings) -> "VectorStoreAdapter":
        return cls(
            store,
            batch_size=settings.upsert_batch_size,
            pause_seconds=settings.upsert_pause_seconds,
            max_query_results=settings.max_query_results,
        )

    @property
    def store(self) -> VectorStore:
        return self._store

    @property
    def max_query_results(self) -> int:
        return self._max_results

    async def upsert(self, collection: str, items: Sequence[StoredItem]) -> None:
        items = list(items)
        for offset in range(0, len(items), self._batch_size):
            if offset and self._pause > 0:
                await asyncio.sleep(self._pause)

            batch = items[offset : offset + self._batch_size]
            try:
                await self._store.add(collection, batch)
            except Exception as e:
                logger.error(
                    "Vector upsert failed",
                    error=e,
                    collection=collection,
                    batch_offset=offset,
                    batch_size=len(batch),
                )
                raise VectorStoreError(
                    f"Failed to upsert into {collection}",
                    context={"collection": collection, "batch_offset": offset},
                    cause=e,
                ) from e

        if items:
            logger.debug("Upserted vectors", collection=collection, count=len(items))

    async def query(
        self,
        collection: str,
        embedding: list[float],
        k: int,
        source: ContextSource,
    ) -> list[ContextItem]:
        n_results = min(k, self._max_results)
        if n_results < 1:
            return []

        try:
            results = await self._store.query(collection, embedding, n_results)
        except Exception as e:
            logger.warning("Vector query failed", error=e, collection=collection)
            return []

        return [
            ContextItem(
                id=r.id,
                document=r.document,
                metadata=r.metadata,
                distance=r.distance,
                source=source,
            )
            for r in results[:n_results]
        ]

    async def delete(self, collection: str, ids: Sequence[str]) -> None:
        if not ids:
            return
        try:
            await self._store.delete(collection, ids)
        except Exception as e:
            raise VectorStoreError(
                f"Failed to delete from {collection}",
                context={"collection": collection, "count": len(ids)},
                cause=e,
            ) from e

    async def get(self, collection: str, ids: Sequence[str]) -> list[StoredItem]:
        try:
            return await self._store.get(collection, ids)
        except Exception as e:
            raise VectorStoreError(
                f"Failed to read from {collection}",
                context={"collection": collection},
                cause=e,
            ) from e

    async def count(self, collection: str) -> int:
        return await self._store.count(collection)

    async def close(self) -> None:
        await self._store.close()
