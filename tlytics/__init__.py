"""
tlytics - buffered event ingestion.

Emit events into a local AnalyticsServer (SQLite-backed) or into a Client
that ships batches to a remote tlytics service.
"""

from .event_models import Emitter, Event
from .client import Client
from .server import AnalyticsServer
from .services.buffer import IngestionBuffer
from .services.delivery import DeliveryPolicy, FailureMode
from .services.scheduler import FlushScheduler
from .sinks.base import BatchSink, SinkError
from .storage.sqlite import EventStore, StoreError

__all__ = [
    "AnalyticsServer",
    "BatchSink",
    "Client",
    "DeliveryPolicy",
    "Emitter",
    "Event",
    "EventStore",
    "FailureMode",
    "FlushScheduler",
    "IngestionBuffer",
    "SinkError",
    "StoreError",
]
