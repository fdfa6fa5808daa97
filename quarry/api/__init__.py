"""
API Module

Thin FastAPI layer over the orchestrator and the ingestion pipeline.
"""

from quarry.api.app import create_app

__all__ = ["create_app"]
