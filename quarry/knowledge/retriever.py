"""
Context Fusion

Retrieves context for a prompt from the organization's documents and
the user's chat history, then assembles the augmented prompt.

Design decisions:
- The prompt is embedded once and both collections are queried with it
- Plain distance-sorted merge; both sources share one embedding space
- Unfiltered top-k; no relevance threshold
- Embedding failure degrades to no-context generation
"""

import asyncio

from quarry.core.types import ContextItem, ContextSource
from quarry.knowledge.embeddings import EmbeddingGateway
from quarry.knowledge.vector_store import (
    VectorStoreAdapter,
    org_documents_collection,
    user_chats_collection,
)
from quarry.observability.logging import get_logger

logger = get_logger(__name__)


def _distance_key(item: ContextItem) -> tuple[bool, float]:
    # None sorts after every real distance
    return (item.distance is None, item.distance if item.distance is not None else 0.0)


def fuse_results(*result_sets: list[ContextItem], k: int) -> list[ContextItem]:
    """Concatenate result sets, stable-sort by ascending distance, keep k."""
    if k < 1:
        return []
    merged = [item for results in result_sets for item in results]
    merged.sort(key=_distance_key)
    return merged[:k]


class ContextFusion:
    """
    Multi-collection retriever.

    Usage:
        fusion = ContextFusion(gateway, adapter)
        items = await fusion.retrieve("What is our refund policy?", "org1", "user1", k=5)
    """

    def __init__(
        self,
        gateway: EmbeddingGateway,
        adapter: VectorStoreAdapter,
        default_k: int = 5,
    ):
        self._gateway = gateway
        self._adapter = adapter
        self._default_k = default_k

    async def retrieve(
        self,
        prompt: str,
        organization_id: str,
        user_id: str,
        k: int | None = None,
    ) -> list[ContextItem]:
        k = self._default_k if k is None else k

        vector = await self._gateway.embed(prompt)
        if vector is None:
            logger.warning("Prompt embedding unavailable, continuing without context")
            return []

        knowledge, history = await asyncio.gather(
            self._adapter.query(
                org_documents_collection(organization_id),
                vector,
                k,
                ContextSource.KNOWLEDGE_BASE,
            ),
            self._adapter.query(
                user_chats_collection(user_id),
                vector,
                k,
                ContextSource.CHAT_HISTORY,
            ),
        )

        fused = fuse_results(knowledge, history, k=k)

        logger.debug(
            "Context retrieved",
            knowledge_hits=len(knowledge),
            history_hits=len(history),
            returned=len(fused),
        )
        return fused


class PromptAssembler:
    """
    Builds the augmented prompt sent to the generation backend.

    Format:
        Context 1 [knowledge_base]: <document>

        Context 2 [chat_history]: <document>

        User: <prompt>
    """

    def __init__(self, separator: str = "\n\n"):
        self._separator = separator

    def format_context(self, items: list[ContextItem]) -> str:
        return self._separator.join(
            f"Context {i} [{item.source.value}]: {item.document}"
            for i, item in enumerate(items, start=1)
        )

    def assemble(self, prompt: str, items: list[ContextItem]) -> str:
        if not items:
            return prompt
        return f"{self.format_context(items)}{self._separator}User: {prompt}"
