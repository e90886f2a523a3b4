"""Local analytics server: ingestion buffer flushing into the SQLite store."""
from typing import List, Tuple
import structlog
from .event_models import Event
from .metrics import Metrics
from .services.buffer import IngestionBuffer
from .services.delivery import DeliveryPolicy
from .services.scheduler import FlushScheduler
from .storage.sqlite import EventStore

log = structlog.get_logger()

DEFAULT_FLUSH_PERIOD = 5.0


class AnalyticsServer:
    """
    Owns the event store and the buffer/scheduler pair that feeds it.

    Usage:
        server = AnalyticsServer("events.db", flush_period=1.0)
        await server.start()
        server.emit(Event(key="page_view", data={"page": "home"}))
        ...
        await server.close()
    """

    def __init__(
        self,
        db_path: str,
        flush_period: float = DEFAULT_FLUSH_PERIOD,
        policy: DeliveryPolicy | None = None,
        metrics: Metrics | None = None,
    ):
        self.store = EventStore(db_path)
        self.buffer = IngestionBuffer(self.store, policy=policy, metrics=metrics, name="server")
        self.scheduler = FlushScheduler(self.buffer, period=flush_period or DEFAULT_FLUSH_PERIOD)

    async def start(self):
        """
        Open the store and start periodic flushing.

        Raises:
            StoreError: If the database cannot be opened; nothing is started
        """
        await self.store.open()
        self.scheduler.start()
        log.info("server.started", db_path=self.store.db_path, flush_period=self.scheduler.period)

    def emit(self, event: Event) -> Event:
        return self.buffer.emit(event)

    async def flush(self) -> List[Event]:
        return await self.scheduler.flush()

    async def get_events(self, limit: int, offset: int) -> Tuple[List[Event], int]:
        return await self.store.get_events(limit, offset)

    async def health_check(self) -> bool:
        return self.store.is_open and await self.store.health_check()

    async def close(self):
        """Stop the scheduler (final drain included) and close the store."""
        await self.scheduler.stop()
        await self.store.close()
        log.info("server.closed")

    async def __aenter__(self) -> "AnalyticsServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
