"""
API Middleware

Request id propagation and timing.
"""

import time
from collections.abc import Callable
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from quarry.observability.logging import StructuredLogger


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request id and binds it to the log context.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        request_id = request.headers.get("X-Request-Id", str(uuid4()))
        request.state.request_id = request_id

        start_time = time.perf_counter()

        with StructuredLogger.context(request_id=request_id):
            response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        return response
