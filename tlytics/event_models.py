from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
from typing import Any, Dict, Protocol, runtime_checkable


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(BaseModel):
    """A single analytics event. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1, description="Event name, e.g. page_view")
    timestamp: datetime | None = Field(default=None, description="Set at emit time when missing")
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # Naive timestamps are taken to be UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def stamped(self) -> "Event":
        """Return this event with its timestamp filled in."""
        if self.timestamp is not None:
            return self
        return self.model_copy(update={"timestamp": utcnow()})


@runtime_checkable
class Emitter(Protocol):
    """Anything events can be emitted into: a local server or a remote client."""

    def emit(self, event: Event) -> Event:
        ...
