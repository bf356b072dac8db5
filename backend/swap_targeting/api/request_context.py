"""Request Context — request id, timing and the response envelope.

Invariants:
    - Every request gets request.state.request_id (incoming X-Request-ID honoured)
    - The id is echoed in the X-Request-ID response header
    - envelope() / error_envelope() always carry metadata.requestId and executionTime

Design Decisions:
    - BaseHTTPMiddleware: request.state is shared with routes and exception handlers
    - executionTime measured from middleware entry in milliseconds
"""

import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Stamp request id and start time on request.state."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        request.state.request_id = (
            request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        )
        request.state.started_at = time.perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        elapsed = (time.perf_counter() - request.state.started_at) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                "request_id": request.state.request_id,
                "path": request.url.path,
                "execution_ms": round(elapsed, 2),
            },
        )
        return response


def build_metadata(request: Request, warnings: list[str] | None = None) -> dict:
    started = getattr(request.state, "started_at", None)
    elapsed = (time.perf_counter() - started) * 1000 if started is not None else 0.0
    metadata = {
        "requestId": getattr(request.state, "request_id", None) or str(uuid.uuid4()),
        "executionTime": round(elapsed, 2),
    }
    if warnings:
        metadata["warnings"] = list(warnings)
    return metadata


def envelope(request: Request, data, warnings: list[str] | None = None) -> dict:
    """Success envelope."""
    return {
        "success": True,
        "data": data,
        "metadata": build_metadata(request, warnings),
    }


def error_envelope(request: Request, body: dict) -> dict:
    """Attach metadata to an error body produced by SwapTargetingError.to_response()."""
    return {**body, "metadata": build_metadata(request)}
