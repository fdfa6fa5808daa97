"""
Document API Routes

Upload (ingest) and delete organization documents.
"""

from typing import Any

from fastapi import APIRouter, Depends, File, UploadFile

from quarry.api.dependencies import Tenant, get_ingestion, get_tenant
from quarry.knowledge.ingestion import IngestionPipeline

router = APIRouter()


@router.post("/documents")
async def upload_document(
    file: UploadFile = File(...),
    tenant: Tenant = Depends(get_tenant),
    ingestion: IngestionPipeline = Depends(get_ingestion),
) -> dict[str, Any]:
    """Ingest an uploaded file and return the ingestion summary."""
    # Never hold more than the limit plus one byte in memory
    if file.size is not None:
        ingestion.check_file_size(file.size, file.filename or "")
    data = await file.read(ingestion.max_file_size + 1)
    result = await ingestion.ingest(
        data,
        file.content_type or "application/octet-stream",
        tenant.organization_id,
        tenant.user_id,
        file.filename or "",
    )
    return result.model_dump(mode="json", by_alias=True)


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    tenant: Tenant = Depends(get_tenant),
    ingestion: IngestionPipeline = Depends(get_ingestion),
) -> dict[str, Any]:
    """Delete a document and all of its stored vectors."""
    document = await ingestion.delete_document(document_id, tenant.organization_id)
    return {
        "deleted": document.id,
        "filename": document.filename,
        "vectorsRemoved": len(document.vector_ids),
    }
