"""Base interface for batch sinks."""
from abc import ABC, abstractmethod
from typing import Sequence
from ..event_models import Event


class SinkError(Exception):
    """Raised when a sink cannot accept a batch."""
    pass


class BatchSink(ABC):
    """Destination for drained batches: the local store or a remote service."""

    @abstractmethod
    async def commit_batch(self, events: Sequence[Event]) -> None:
        """
        Durably hand off a batch of events.

        Args:
            events: Events in emission order

        Raises:
            Exception: Any failure; the caller's delivery policy decides what happens next
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the sink is reachable.

        Returns:
            True if the sink is healthy, False otherwise
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the sink."""
        return None
