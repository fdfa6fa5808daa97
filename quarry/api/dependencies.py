"""
FastAPI Dependencies

Dependency injection for API routes.

Components are built once in the app lifespan and read from
app.state.components.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request

from quarry.core.interfaces import DocumentStoreProtocol
from quarry.knowledge.ingestion import IngestionPipeline
from quarry.runtime.factory import Components
from quarry.runtime.orchestrator import GenerationOrchestrator


@dataclass(frozen=True)
class Tenant:
    """Caller identity. Authentication happens upstream of this service."""

    organization_id: str
    user_id: str


async def get_components(request: Request) -> Components:
    """Get application components from state."""
    components = getattr(request.app.state, "components", None)
    if components is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return components


async def get_orchestrator(
    components: Components = Depends(get_components),
) -> GenerationOrchestrator:
    return components.orchestrator


async def get_ingestion(
    components: Components = Depends(get_components),
) -> IngestionPipeline:
    return components.ingestion


async def get_document_store(
    components: Components = Depends(get_components),
) -> DocumentStoreProtocol:
    return components.document_store


async def get_tenant(
    x_organization_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> Tenant:
    """Read tenant identity from the X-Organization-Id / X-User-Id headers."""
    if not x_organization_id or not x_user_id:
        raise HTTPException(
            status_code=401,
            detail="X-Organization-Id and X-User-Id headers are required",
        )
    return Tenant(organization_id=x_organization_id, user_id=x_user_id)
