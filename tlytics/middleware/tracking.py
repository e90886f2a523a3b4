"""Request tracking: turn handled HTTP requests into analytics events."""
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from ..event_models import Emitter, Event

log = structlog.get_logger()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def _resolve_emitter(request: Request, emitter: Emitter | None) -> Emitter | None:
    if emitter is not None:
        return emitter
    return getattr(request.app.state, "analytics", None)


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """
    Emits one ``http_request`` event per request.

    When no emitter is given, the app's ``state.analytics`` is used, so the
    tlytics service can track its own traffic.
    """

    def __init__(self, app, emitter: Emitter | None = None, key: str = "http_request"):
        super().__init__(app)
        self.emitter = emitter
        self.key = key

    async def dispatch(self, request: Request, call_next):
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()

        response = await call_next(request)

        emitter = _resolve_emitter(request, self.emitter)
        if emitter is None:
            return response

        emitter.emit(
            Event(
                key=self.key,
                timestamp=started_at,
                data={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                    "client_ip": _client_ip(request),
                    "user_agent": request.headers.get("user-agent", ""),
                    "response_size": int(response.headers.get("content-length", 0) or 0),
                },
            )
        )
        return response


def track_event(key: str, data: Dict[str, Any] | None = None, emitter: Emitter | None = None) -> Callable:
    """
    Build a route dependency that emits ``key`` once the handler has run.

    Usage:
        @app.get("/api/users", dependencies=[Depends(track_event("api_access", {"endpoint": "users"}))])
        async def list_users(): ...
    """

    async def dependency(request: Request):
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        yield

        target = _resolve_emitter(request, emitter)
        if target is None:
            log.warning("tracking.no_emitter", key=key, path=request.url.path)
            return

        payload = dict(data or {})
        payload["request_path"] = request.url.path
        payload["client_ip"] = _client_ip(request)
        payload["duration_ms"] = int((time.perf_counter() - start) * 1000)
        target.emit(Event(key=key, timestamp=started_at, data=payload))

    return dependency
