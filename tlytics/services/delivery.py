"""Delivery policy applied when a drained batch is handed to its sink."""
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Sequence
import structlog
from ..event_models import Event
from ..sinks.base import BatchSink
from .spill import SpillFile

log = structlog.get_logger()


class FailureMode(str, Enum):
    """What happens to a batch whose sink call fails."""
    DROP = "drop"
    RETRY = "retry"
    SPILL = "spill"


@dataclass
class DeliveryPolicy:
    mode: FailureMode = FailureMode.DROP
    max_attempts: int = 3
    backoff_seconds: float = 0.5
    max_backoff_seconds: float = 5.0
    spill_path: str | None = None

    def __post_init__(self):
        self.mode = FailureMode(self.mode)
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.mode is FailureMode.SPILL and not self.spill_path:
            raise ValueError("spill mode requires spill_path")

    @classmethod
    def from_settings(cls, settings) -> "DeliveryPolicy":
        return cls(
            mode=FailureMode(settings.FAILURE_MODE),
            max_attempts=settings.RETRY_ATTEMPTS,
            backoff_seconds=settings.RETRY_BACKOFF,
            max_backoff_seconds=settings.RETRY_BACKOFF_MAX,
            spill_path=settings.SPILL_PATH,
        )

    @property
    def attempts(self) -> int:
        return 1 if self.mode is FailureMode.DROP else self.max_attempts

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)


@dataclass
class DeliveryResult:
    delivered: bool
    attempts: int
    spilled: bool = False


async def deliver(
    sink: BatchSink,
    events: Sequence[Event],
    policy: DeliveryPolicy,
    spill: SpillFile | None = None,
    on_failure=None,
    buffer_name: str = "buffer",
) -> DeliveryResult:
    """
    Hand a batch to a sink according to ``policy``.

    Sink errors never propagate: the outcome is reported through the
    returned DeliveryResult and the logs. ``on_failure`` is called once
    when every attempt has failed.
    """
    attempts = policy.attempts
    for attempt in range(1, attempts + 1):
        try:
            await sink.commit_batch(events)
            if attempt > 1:
                log.info("batch.delivered_after_retry", buffer=buffer_name, count=len(events), attempt=attempt)
            return DeliveryResult(delivered=True, attempts=attempt)
        except Exception as e:
            log.warning(
                "batch.delivery_failed",
                buffer=buffer_name,
                count=len(events),
                attempt=attempt,
                max_attempts=attempts,
                error=str(e),
                error_type=type(e).__name__,
            )
            if attempt < attempts:
                await asyncio.sleep(policy.backoff(attempt))

    if on_failure is not None:
        on_failure()

    if policy.mode is FailureMode.SPILL and spill is not None:
        try:
            spill.append(events)
            return DeliveryResult(delivered=False, attempts=attempts, spilled=True)
        except OSError as e:
            log.error("spill.write_failed", buffer=buffer_name, path=str(spill.path), error=str(e))

    log.error("batch.dropped", buffer=buffer_name, count=len(events), attempts=attempts)
    return DeliveryResult(delivered=False, attempts=attempts)
