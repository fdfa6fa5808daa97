"""
Health Check Routes
"""

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict[str, Any]:
    """Readiness check: components have been built."""
    components = getattr(request.app.state, "components", None)
    if components is None:
        return {"status": "starting"}
    return {
        "status": "ready",
        "llm_provider": components.settings.llm.provider,
        "embedding_provider": components.gateway.provider.name,
    }
