"""Local spill file for batches that could not be delivered."""
import threading
from pathlib import Path
from typing import List, Sequence
import orjson
import structlog
from ..event_models import Event

log = structlog.get_logger()


class SpillFile:
    """
    JSON-lines file holding undeliverable batches, one batch per line.

    ``take()`` moves the file aside to ``<name>.restoring`` and returns its
    events; that copy stays on disk until ``release()`` is called once the
    restored events have been delivered or spilled again. A restart in
    between restores them a second time.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.restoring_path = self.path.with_name(self.path.name + ".restoring")
        self._lock = threading.Lock()

    def append(self, events: Sequence[Event]):
        """Append one batch. Raises OSError if the file cannot be written."""
        line = orjson.dumps([event.model_dump(mode="json") for event in events])
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("ab") as fh:
                fh.write(line + b"\n")
        log.warning("spill.batch_written", count=len(events), path=str(self.path))

    def take(self) -> List[Event]:
        """Return every spilled event, oldest first, keeping them on disk."""
        with self._lock:
            if self.path.exists():
                if self.restoring_path.exists():
                    # Left over from a run that stopped before releasing
                    with self.restoring_path.open("ab") as fh:
                        fh.write(self.path.read_bytes())
                    self.path.unlink()
                else:
                    self.path.rename(self.restoring_path)
            if not self.restoring_path.exists():
                return []
            raw = self.restoring_path.read_bytes()

        events = []
        for lineno, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                events.extend(Event(**item) for item in orjson.loads(line))
            except (orjson.JSONDecodeError, TypeError, ValueError) as e:
                # pydantic.ValidationError is a ValueError
                log.error("spill.corrupt_line", path=str(self.restoring_path), line=lineno, error=str(e))
        if events:
            log.info("spill.restored", count=len(events), path=str(self.restoring_path))
        return events

    def release(self):
        """Forget events handed out by ``take()``."""
        with self._lock:
            self.restoring_path.unlink(missing_ok=True)
        log.info("spill.released", path=str(self.restoring_path))
