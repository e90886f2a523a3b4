import math
from typing import List
from fastapi import APIRouter, HTTPException, Request
import structlog
from .schemas import BatchRequest, EventPage, FlushResponse, QueuedResponse, ViewResponse
from ..event_models import Event
from ..server import AnalyticsServer
from ..storage.sqlite import StoreError

router = APIRouter(tags=["events"])
log = structlog.get_logger()


def _analytics(request: Request) -> AnalyticsServer:
    return request.app.state.analytics


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value)
    except ValueError:
        return default


def _queue(request: Request, events: List[Event]) -> QueuedResponse:
    # Every event has already passed validation, so the batch is all-or-nothing
    analytics = _analytics(request)
    for event in events:
        analytics.emit(event)
    log.info("events.queued", count=len(events))
    return QueuedResponse(message=f"Successfully queued {len(events)} events", count=len(events))


@router.post("/events", response_model=QueuedResponse)
async def submit_events(events: List[Event], request: Request):
    return _queue(request, events)


@router.post("/batch", response_model=QueuedResponse)
async def submit_batch(batch: BatchRequest, request: Request):
    return _queue(request, batch.events)


@router.get("/events", response_model=EventPage)
async def list_events(request: Request, limit: int = 25, offset: int = 0):
    try:
        events, total = await _analytics(request).get_events(limit, offset)
    except StoreError:
        raise HTTPException(500, detail="Failed to retrieve events")
    return EventPage(events=events, total=total, limit=limit, offset=offset)


@router.get("/view", response_model=ViewResponse)
async def view_events(request: Request, page: str = "1", page_size: str = ""):
    """Page-numbered, newest-first view. Out-of-range parameters fall back to defaults."""
    settings = request.app.state.settings
    page_num = _parse_int(page, 1)
    if page_num < 1:
        page_num = 1
    size = _parse_int(page_size, settings.DEFAULT_PAGE_SIZE)
    if size < 1 or size > settings.MAX_PAGE_SIZE:
        size = settings.DEFAULT_PAGE_SIZE

    try:
        events, total = await _analytics(request).get_events(size, (page_num - 1) * size)
    except StoreError:
        raise HTTPException(500, detail="Failed to retrieve events")

    return ViewResponse(
        events=events,
        total=total,
        page=page_num,
        page_size=size,
        total_pages=math.ceil(total / size),
    )


@router.post("/flush", response_model=FlushResponse)
async def flush_events(request: Request):
    flushed = await _analytics(request).flush()
    return FlushResponse(flushed=len(flushed))
