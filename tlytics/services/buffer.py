"""In-memory ingestion buffer parametrized over its sink."""
import asyncio
import threading
import time
from typing import List
import structlog
from ..event_models import Event
from ..metrics import Metrics
from ..sinks.base import BatchSink
from .delivery import DeliveryPolicy, DeliveryResult, FailureMode, deliver
from .spill import SpillFile

log = structlog.get_logger()


class IngestionBuffer:
    """
    Holds events that are not yet durable and drains them into a sink.

    ``emit`` is a plain call guarded by a threading lock, so producers on
    any thread can use it. ``drain`` snapshots and empties the sequence
    under that lock and delivers the snapshot outside it; drains on the
    same buffer are serialized by an asyncio lock held for the sink I/O.
    """

    def __init__(
        self,
        sink: BatchSink,
        policy: DeliveryPolicy | None = None,
        metrics: Metrics | None = None,
        name: str = "server",
    ):
        self.sink = sink
        self.policy = policy or DeliveryPolicy()
        self.name = name
        self._metrics = metrics
        self._events: List[Event] = []
        self._restored_pending = False
        self._lock = threading.Lock()
        self._drain_lock = asyncio.Lock()
        self._spill = (
            SpillFile(self.policy.spill_path) if self.policy.mode is FailureMode.SPILL else None
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def emit(self, event: Event) -> Event:
        """
        Queue an event for the next drain.

        Fills in the timestamp when unset and returns the queued event.
        """
        event = event.stamped()
        with self._lock:
            self._events.append(event)
            depth = len(self._events)
        if self._metrics is not None:
            self._metrics.record_emitted(self.name, depth)
        return event

    def restore(self, events: List[Event]):
        """Put previously drained events back at the head of the buffer."""
        if not events:
            return
        with self._lock:
            self._events[:0] = events
        log.info("buffer.restored", buffer=self.name, count=len(events))

    def restore_spilled(self) -> int:
        """Requeue events left in the spill file by an earlier run."""
        if self._spill is None:
            return 0
        events = self._spill.take()
        if events:
            self.restore(events)
            with self._lock:
                self._restored_pending = True
        return len(events)

    async def drain(self) -> List[Event]:
        """
        Empty the buffer and deliver its contents to the sink.

        Returns the drained batch, or an empty list when there was nothing
        to drain. Delivery failures are handled by the delivery policy and
        never raised here.
        """
        async with self._drain_lock:
            with self._lock:
                if not self._events:
                    return []
                batch = self._events
                self._events = []
                restored = self._restored_pending
                self._restored_pending = False

            if self._metrics is not None:
                self._metrics.buffer_depth.labels(buffer=self.name).set(len(self))

            start = time.monotonic()
            result = await deliver(
                self.sink,
                batch,
                self.policy,
                spill=self._spill,
                on_failure=self._record_failure,
                buffer_name=self.name,
            )
            self._record_result(result, len(batch), time.monotonic() - start)
            if restored:
                self._settle_restored(result)
            return batch

    def _settle_restored(self, result: DeliveryResult):
        # Restored events stay in the spill file until they are safe elsewhere
        if result.delivered or result.spilled:
            self._spill.release()
        else:
            log.warning("buffer.restored_events_kept", buffer=self.name, path=str(self._spill.restoring_path))

    def _record_failure(self):
        if self._metrics is not None:
            self._metrics.batches_failed_total.labels(buffer=self.name).inc()

    def _record_result(self, result: DeliveryResult, count: int, duration: float):
        if result.delivered:
            log.info("buffer.drained", buffer=self.name, count=count, duration_ms=round(duration * 1000, 2))
        if self._metrics is None:
            return
        if result.delivered:
            self._metrics.record_flushed(self.name, count, duration)
        elif result.spilled:
            self._metrics.events_spilled_total.labels(buffer=self.name).inc(count)
        else:
            self._metrics.events_dropped_total.labels(buffer=self.name).inc(count)
