"""Periodic and shutdown-time flushing of an ingestion buffer."""
import asyncio
from enum import Enum
from typing import List
import structlog
from ..event_models import Event
from .buffer import IngestionBuffer

log = structlog.get_logger()


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class FlushScheduler:
    """
    Drains a buffer every ``period`` seconds and once more on stop.

    ``stop()`` is one-shot: it waits for the final drain, after which the
    scheduler performs no further drains and must be discarded.
    """

    def __init__(self, buffer: IngestionBuffer, period: float = 5.0):
        if period <= 0:
            raise ValueError("flush period must be positive")
        self.buffer = buffer
        self.period = period
        self.state = SchedulerState.IDLE
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def start(self):
        """Start the background flush task. Must be called from a running event loop."""
        if self.state is not SchedulerState.IDLE:
            raise RuntimeError(f"scheduler cannot start from state {self.state.value}")
        self.buffer.restore_spilled()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"tlytics-flush-{self.buffer.name}"
        )
        self.state = SchedulerState.RUNNING
        log.info("scheduler.started", buffer=self.buffer.name, period=self.period)

    async def _run(self):
        while True:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.period)
                break
            except asyncio.TimeoutError:
                await self._drain("periodic")
        await self._drain("shutdown")

    async def _drain(self, reason: str) -> List[Event]:
        try:
            return await self.buffer.drain()
        except Exception as e:
            log.error("scheduler.drain_error", buffer=self.buffer.name, reason=reason, error=str(e), exc_info=True)
            return []

    async def flush(self) -> List[Event]:
        """Drain the buffer now. A stopped scheduler does nothing."""
        if self.state is SchedulerState.STOPPED or self._stopping:
            log.warning("scheduler.flush_after_stop", buffer=self.buffer.name)
            return []
        return await self.buffer.drain()

    async def stop(self):
        """Signal shutdown and wait for the final drain to finish."""
        if self.state is SchedulerState.STOPPED:
            return
        if self._stopping:
            if self._task is not None:
                await asyncio.shield(self._task)
            return
        self._stopping = True
        try:
            if self._task is None:
                await self._drain("shutdown")
            else:
                self._stop_event.set()
                await self._task
        finally:
            self.state = SchedulerState.STOPPED
            log.info("scheduler.stopped", buffer=self.buffer.name)
