from pydantic import BaseModel, Field
from typing import List
from ..event_models import Event

class BatchRequest(BaseModel):
    events: List[Event] = Field(default_factory=list)

class QueuedResponse(BaseModel):
    message: str
    count: int

class EventPage(BaseModel):
    events: List[Event]
    total: int
    limit: int
    offset: int

class ViewResponse(BaseModel):
    events: List[Event]
    total: int
    page: int
    page_size: int
    total_pages: int

class FlushResponse(BaseModel):
    flushed: int
