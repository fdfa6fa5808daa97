"""
Memory Module

Persistence of chats, messages and document metadata.
"""

from quarry.memory.store import InMemoryDocumentStore

__all__ = ["InMemoryDocumentStore"]
