"""Client that queues events locally and ships them to a remote tlytics server."""
from typing import List
import httpx
import structlog
from .event_models import Event
from .metrics import Metrics
from .services.buffer import IngestionBuffer
from .services.delivery import DeliveryPolicy
from .services.scheduler import FlushScheduler
from .sinks.http import HttpSink

log = structlog.get_logger()


class Client:
    """
    Remote counterpart of AnalyticsServer.

    Events are buffered in-process and POSTed in batches to
    ``{server_url}/events`` every ``flush_period`` seconds.

    Usage:
        async with Client("http://10.0.0.5:8080", flush_period=3.0) as analytics:
            analytics.emit(Event(key="page_view", data={"page": "home"}))
    """

    def __init__(
        self,
        server_url: str,
        flush_period: float = 5.0,
        timeout: float = 10.0,
        policy: DeliveryPolicy | None = None,
        metrics: Metrics | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not server_url:
            raise ValueError("server_url is required")
        self.server_url = server_url
        self.sink = HttpSink(server_url, timeout=timeout, client=http_client)
        self.buffer = IngestionBuffer(self.sink, policy=policy, metrics=metrics, name="client")
        self.scheduler = FlushScheduler(self.buffer, period=flush_period or 5.0)

    def start(self):
        """Start periodic flushing. Must be called from a running event loop."""
        self.scheduler.start()
        log.info("client.started", server_url=self.server_url, flush_period=self.scheduler.period)

    def emit(self, event: Event) -> Event:
        return self.buffer.emit(event)

    async def emit_and_send(self, event: Event) -> Event:
        """
        Send one event immediately, bypassing the buffer.

        Raises:
            SinkError: If the server is unreachable or rejects the event
        """
        event = event.stamped()
        await self.sink.commit_batch([event])
        return event

    async def flush(self) -> List[Event]:
        return await self.scheduler.flush()

    async def close(self):
        """Flush what is queued, stop the scheduler and close the HTTP client."""
        await self.scheduler.stop()
        await self.sink.close()
        log.info("client.closed", server_url=self.server_url)

    async def __aenter__(self) -> "Client":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
