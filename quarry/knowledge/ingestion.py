"""
Document Ingestion Pipeline

Turns an uploaded file into embedded, stored chunks plus a document record.

Design decisions:
- All validation happens before the first side effect
- Chunks are processed in small batches with a pause between them, so
  memory and downstream load stay bounded regardless of file size
- Chunk-level failures are logged and skipped; the upload still succeeds
  with fewer stored chunks
- Extraction failure degrades to a placeholder chunk
- Deleting a document removes its vectors before its metadata
"""

import asyncio

from pydantic import BaseModel, ConfigDict, Field

from quarry.config.settings import IngestionSettings
from quarry.core.exceptions import (
    DocumentNotFoundError,
    DocumentStoreError,
    DuplicateDocumentError,
    ExtractionError,
    FileTooLargeError,
    UnsupportedMimeTypeError,
    ValidationError,
    VectorStoreError,
)
from quarry.core.interfaces import DocumentStoreProtocol, TextExtractorProtocol
from quarry.core.types import Chunk, DocumentRecord, QAPair, StoredItem, new_id
from quarry.knowledge.chunking import TextChunker
from quarry.knowledge.embeddings import EmbeddingGateway
from quarry.knowledge.extraction import infer_doc_type
from quarry.knowledge.vector_store import VectorStoreAdapter, org_documents_collection
from quarry.observability.logging import get_logger
from quarry.reasoning.qa import QAGenerator

logger = get_logger(__name__)

PLACEHOLDER_TEMPLATE = "[Content of {filename} could not be extracted]"

CHUNK_ITEM_TYPE = "file_chunk"
QA_ITEM_TYPE = "file_qa"


class IngestResult(BaseModel):
    """Ingestion summary returned to the caller."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName")
    file_size: int = Field(alias="fileSize")
    chunks_stored: int = Field(alias="chunksStored")
    total_chunks: int = Field(alias="totalChunks")
    qa: QAPair | None = None
    document: DocumentRecord


class IngestionPipeline:
    """
    Drives extraction, chunking, embedding and storage for one upload at a time.

    Usage:
        pipeline = IngestionPipeline(extractor, gateway, adapter, store, qa_generator)
        result = await pipeline.ingest(data, "application/pdf", "org1", "user1", "report.pdf")
    """

    def __init__(
        self,
        extractor: TextExtractorProtocol,
        gateway: EmbeddingGateway,
        adapter: VectorStoreAdapter,
        document_store: DocumentStoreProtocol,
        qa_generator: QAGenerator | None = None,
        settings: IngestionSettings | None = None,
    ):
        self._extractor = extractor
        self._gateway = gateway
        self._adapter = adapter
        self._store = document_store
        self._qa = qa_generator
        self._settings = settings or IngestionSettings()
        self._chunker = TextChunker(
            chunk_size=self._settings.chunk_size,
            chunk_overlap=self._settings.chunk_overlap,
            rows_per_chunk=self._settings.rows_per_chunk,
        )

    # -------------------------------------------------------------------------
    # Ingest
    # -------------------------------------------------------------------------

    @property
    def max_file_size(self) -> int:
        return self._settings.max_file_size

    def check_file_size(self, size: int, filename: str) -> None:
        """Raise FileTooLargeError when size is over the upload limit."""
        if size > self._settings.max_file_size:
            raise FileTooLargeError(
                f"File exceeds the {self._settings.max_file_size} byte limit",
                max_size=self._settings.max_file_size,
                actual_size=size,
                context={"filename": filename, "size": size},
            )

    async def _validate(
        self,
        file_bytes: bytes,
        mime_type: str,
        organization_id: str,
        filename: str,
    ) -> None:
        if not filename or not filename.strip():
            raise ValidationError("Filename is required")

        self.check_file_size(len(file_bytes), filename)

        if not self._extractor.supports(mime_type):
            raise UnsupportedMimeTypeError(
                f"Unsupported file type: {mime_type}",
                context={"mime_type": mime_type},
            )

        existing = await self._store.find_documents_by_org(organization_id)
        if any(doc.filename == filename for doc in existing):
            raise DuplicateDocumentError(
                f"A document named {filename!r} already exists",
                context={"filename": filename},
            )

    async def _chunk(self, file_bytes: bytes, mime_type: str, filename: str, document_id: str) -> list[Chunk]:
        try:
            if self._extractor.is_tabular(mime_type):
                rows = await asyncio.to_thread(self._extractor.extract_rows, file_bytes, mime_type)
                chunks = self._chunker.chunk_rows(rows, source_id=document_id)
            else:
                text = await asyncio.to_thread(self._extractor.extract, file_bytes, mime_type)
                chunks = self._chunker.chunk(text, source_id=document_id)
        except ExtractionError as e:
            logger.warning("Extraction failed, storing placeholder", error=e, filename=filename)
            chunks = []

        if not chunks:
            chunks = [
                Chunk(
                    text=PLACEHOLDER_TEMPLATE.format(filename=filename),
                    source_id=document_id,
                    sequence_index=0,
                )
            ]
        return chunks

    async def _store_chunk(
        self,
        chunk: Chunk,
        collection: str,
        metadata: dict[str, str | None],
    ) -> str | None:
        """Embed and upsert one chunk. Returns its id, or None when skipped."""
        embedding = await self._gateway.embed(chunk.text)
        if embedding is None:
            logger.warning("Skipping chunk without embedding", chunk_index=chunk.sequence_index)
            return None

        item = StoredItem(
            document=chunk.text,
            embedding=embedding,
            metadata={**metadata, "chunk_index": str(chunk.sequence_index)},
        )
        try:
            await self._adapter.upsert(collection, [item])
        except VectorStoreError as e:
            logger.warning("Skipping chunk after upsert failure", error=e, chunk_index=chunk.sequence_index)
            return None
        return item.id

    async def _store_qa(
        self,
        texts: list[str],
        collection: str,
        metadata: dict[str, str | None],
    ) -> tuple[QAPair, str] | None:
        if self._qa is None:
            return None

        qa = await self._qa.generate("\n\n".join(texts))
        if qa is None:
            return None

        embedding = await self._gateway.embed(qa.as_text())
        if embedding is None:
            logger.warning("Q/A pair not stored: embedding unavailable")
            return None

        item = StoredItem(
            document=qa.as_text(),
            embedding=embedding,
            metadata={**metadata, "type": QA_ITEM_TYPE},
        )
        try:
            await self._adapter.upsert(collection, [item])
        except VectorStoreError as e:
            logger.warning("Q/A pair not stored", error=e)
            return None
        return qa, item.id

    async def ingest(
        self,
        file_bytes: bytes,
        mime_type: str,
        organization_id: str,
        user_id: str,
        filename: str,
    ) -> IngestResult:
        """
        Ingest one uploaded file.

        Raises:
            ValidationError: Oversized file, unsupported type or duplicate filename.
                Nothing is written in that case.
            DocumentStoreError: The document record could not be created.
        """
        await self._validate(file_bytes, mime_type, organization_id, filename)

        document_id = new_id()
        collection = org_documents_collection(organization_id)
        file_size = len(file_bytes)

        with logger.context(organization_id=organization_id, user_id=user_id):
            chunks = await self._chunk(file_bytes, mime_type, filename, document_id)

            base_metadata: dict[str, str | None] = {
                "type": CHUNK_ITEM_TYPE,
                "filename": filename,
                "document_id": document_id,
                "organization_id": organization_id,
                "uploaded_by": user_id,
            }

            stored_ids: list[str] = []
            stored_texts: list[str] = []
            batch_size = self._settings.batch_size

            for offset in range(0, len(chunks), batch_size):
                if offset and self._settings.batch_pause_seconds > 0:
                    await asyncio.sleep(self._settings.batch_pause_seconds)

                # One chunk at a time, in sequence order
                for chunk in chunks[offset : offset + batch_size]:
                    item_id = await self._store_chunk(chunk, collection, base_metadata)
                    if item_id is not None:
                        stored_ids.append(item_id)
                        stored_texts.append(chunk.text)

            vector_ids = list(stored_ids)
            qa: QAPair | None = None

            if stored_ids and file_size < self._settings.qa_max_file_size:
                stored_qa = await self._store_qa(
                    stored_texts[: self._settings.qa_context_chunks],
                    collection,
                    base_metadata,
                )
                if stored_qa is not None:
                    qa, qa_id = stored_qa
                    vector_ids.append(qa_id)

            document = DocumentRecord(
                id=document_id,
                organization_id=organization_id,
                uploaded_by=user_id,
                filename=filename,
                doc_type=infer_doc_type(mime_type),
                vector_ids=vector_ids,
            )
            try:
                document = await self._store.create_document(document)
            except Exception as e:
                logger.error(
                    "Document record not created; stored vectors are orphaned",
                    error=e,
                    collection=collection,
                    vector_ids=vector_ids,
                )
                raise DocumentStoreError(
                    f"Failed to save document {filename!r}",
                    context={"filename": filename, "orphaned_vectors": len(vector_ids)},
                    cause=e,
                ) from e

            logger.info(
                "Document ingested",
                document_id=document_id,
                filename=filename,
                chunks_total=len(chunks),
                chunks_stored=len(stored_ids),
                qa_stored=qa is not None,
            )

        return IngestResult(
            file_name=filename,
            file_size=file_size,
            chunks_stored=len(stored_ids),
            total_chunks=len(chunks),
            qa=qa,
            document=document,
        )

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete_document(self, document_id: str, organization_id: str) -> DocumentRecord:
        """
        Delete a document and every vector it owns.

        Vectors go first. If that fails the metadata is kept and the
        error propagates, so no embeddings are left without a record.
        """
        document = await self._store.get_document(document_id)
        if document is None or document.organization_id != organization_id:
            raise DocumentNotFoundError(
                f"Document {document_id} not found",
                context={"document_id": document_id},
            )

        collection = org_documents_collection(organization_id)
        try:
            await self._adapter.delete(collection, document.vector_ids)
        except VectorStoreError as e:
            logger.error(
                "Vector deletion failed; keeping document metadata",
                error=e,
                document_id=document_id,
            )
            raise

        await self._store.delete_document(document_id)

        logger.info(
            "Document deleted",
            document_id=document_id,
            vectors_removed=len(document.vector_ids),
        )
        return document
