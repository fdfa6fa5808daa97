"""
Quarry: Retrieval-Augmented Chat and Document Ingestion

Retrieves prior knowledge (uploaded documents and chat history) and fuses it
into prompts for a streamed text-generation backend, while ingesting new
documents into per-tenant vector collections.

- Chunking: deterministic, sentence-aware character windows
- Retrieval: one embedding, many collections, distance-ordered fusion
- Generation: cancellable token streaming with exactly-once persistence
- Ingestion: memory-bounded batches that skip failures instead of aborting
"""

__version__ = "0.1.0"
__author__ = "Quarry Team"
