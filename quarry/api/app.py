"""
FastAPI Application Factory

Creates and configures the HTTP surface.

Design decisions:
- Factory pattern for testability; prebuilt components can be injected
- Lifespan management for component lifecycle
- QuarryError subclasses map to HTTP status codes in one handler
- CORS configuration from settings
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quarry.config import Settings, get_settings
from quarry.core.exceptions import (
    BackendError,
    ChatNotFoundError,
    DocumentNotFoundError,
    QuarryError,
    ValidationError,
)
from quarry.observability.logging import configure_logging, get_logger
from quarry.runtime.factory import Components, build_components

logger = get_logger(__name__)


def _status_for(error: QuarryError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, (DocumentNotFoundError, ChatNotFoundError)):
        return 404
    if isinstance(error, BackendError):
        return 502
    return 500


async def quarry_error_handler(request: Request, exc: QuarryError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error("Request failed", error=exc, path=request.url.path)
    else:
        logger.info("Request rejected", code=exc.code, path=request.url.path)
    return JSONResponse(status_code=status, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Builds all components from settings on startup unless they were
    injected into create_app(), and closes the ones it built on shutdown.
    """
    settings: Settings = app.state.settings
    built: Components | None = None

    if getattr(app.state, "components", None) is None:
        built = build_components(settings)
        app.state.components = built

    logger.info("Application started", environment=settings.environment)

    yield

    if built is not None:
        await built.close()
    logger.info("Application stopped")


def create_app(
    settings: Settings | None = None,
    components: Components | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use (defaults to get_settings())
        components: Prebuilt components; skips building from settings
    """
    settings = settings or (components.settings if components else get_settings())

    configure_logging(
        level=settings.observability.log_level,
        json_output=settings.observability.log_format == "json",
        log_file=settings.observability.log_file,
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Retrieval-augmented chat over organization documents",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from quarry.api.middleware import RequestContextMiddleware

    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(QuarryError, quarry_error_handler)

    from quarry.api.routes import chat, documents, health

    app.include_router(health.router, tags=["health"])
    app.include_router(chat.router, prefix=settings.api_prefix, tags=["chat"])
    app.include_router(documents.router, prefix=settings.api_prefix, tags=["documents"])

    return app
