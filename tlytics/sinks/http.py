"""HTTP sink that forwards batches to a remote tlytics service."""
from typing import Sequence
import httpx
import orjson
import structlog
from .base import BatchSink, SinkError
from ..event_models import Event

log = structlog.get_logger()

SUBMIT_PATH = "/events"


def encode_batch(events: Sequence[Event]) -> bytes:
    """Serialize a batch as the JSON array the /events endpoint accepts."""
    return orjson.dumps([event.model_dump(mode="json") for event in events])


class HttpSink(BatchSink):
    """POSTs each batch as a JSON array to ``{server_url}/events``."""

    def __init__(self, server_url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        """
        Args:
            server_url: Base URL of the remote service, e.g. http://10.0.0.5:8080
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests pass one with a mock transport)
        """
        self.server_url = server_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.server_url, timeout=timeout)

    async def commit_batch(self, events: Sequence[Event]) -> None:
        """
        Send a batch to the remote service.

        Raises:
            SinkError: On unserializable data, transport errors or any non-success status
        """
        try:
            body = encode_batch(events)
        except (TypeError, ValueError) as e:
            # orjson raises TypeError, pydantic serialization errors are ValueErrors
            raise SinkError(f"failed to encode events: {e}") from e

        try:
            response = await self._client.post(
                self.server_url + SUBMIT_PATH,
                content=body,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise SinkError(f"failed to send events: {e}") from e

        if not response.is_success:
            raise SinkError(f"server returned status: {response.status_code}")

        log.debug("http_sink.batch_sent", count=len(events), url=self.server_url)

    async def health_check(self) -> bool:
        try:
            response = await self._client.get(self.server_url + "/health")
            return response.is_success
        except httpx.HTTPError as e:
            log.warning("http_sink.health_check_failed", error=str(e), url=self.server_url)
            return False

    async def close(self) -> None:
        await self._client.aclose()
