"""Correlation ID middleware for request tracing."""
from contextvars import ContextVar
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

CORRELATION_HEADER = "X-Correlation-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with a correlation ID.

    The ID is taken from the request header or generated, echoed in the
    response header, and bound to the structlog context only for the
    duration of the request.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        token = correlation_id_var.set(correlation_id)
        try:
            with structlog.contextvars.bound_contextvars(
                correlation_id=correlation_id,
                http_method=request.method,
                http_path=request.url.path,
            ):
                response = await call_next(request)
        finally:
            correlation_id_var.reset(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def get_correlation_id() -> str:
    """Correlation ID of the request being handled, or "" outside a request."""
    return correlation_id_var.get()
