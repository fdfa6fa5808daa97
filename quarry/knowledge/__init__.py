"""
Knowledge Module

Chunking, embeddings, vector storage, context fusion, text extraction
and the ingestion pipeline.
"""

from quarry.knowledge.chunking import TextChunker, chunk_rows, chunk_text
from quarry.knowledge.embeddings import (
    EmbeddingGateway,
    EmbeddingProvider,
    OllamaEmbeddings,
    OpenAIEmbeddings,
    StubEmbeddings,
)
from quarry.knowledge.extraction import TextExtractor, infer_doc_type
from quarry.knowledge.ingestion import IngestionPipeline, IngestResult
from quarry.knowledge.retriever import ContextFusion, PromptAssembler, fuse_results
from quarry.knowledge.vector_store import (
    ChromaVectorStore,
    InMemoryVectorStore,
    VectorSearchResult,
    VectorStore,
    VectorStoreAdapter,
    org_documents_collection,
    user_chats_collection,
)

__all__ = [
    # Chunking
    "TextChunker",
    "chunk_rows",
    "chunk_text",
    # Embeddings
    "EmbeddingGateway",
    "EmbeddingProvider",
    "OllamaEmbeddings",
    "OpenAIEmbeddings",
    "StubEmbeddings",
    # Extraction
    "TextExtractor",
    "infer_doc_type",
    # Ingestion
    "IngestResult",
    "IngestionPipeline",
    # Retrieval
    "ContextFusion",
    "PromptAssembler",
    "fuse_results",
    # Vector store
    "ChromaVectorStore",
    "InMemoryVectorStore",
    "VectorSearchResult",
    "VectorStore",
    "VectorStoreAdapter",
    "org_documents_collection",
    "user_chats_collection",
]
