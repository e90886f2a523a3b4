"""SQLite-backed durable event store."""
import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Sequence, Tuple
import aiosqlite
import orjson
import structlog
from ..event_models import Event
from ..sinks.base import BatchSink

log = structlog.get_logger()

TABLE_NAME = "tlytics"


class StoreError(Exception):
    """Raised when the event store cannot be opened or queried."""
    pass


def format_timestamp(ts: datetime) -> str:
    """Render a timestamp as fixed-width UTC ISO-8601 so text order is time order."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


class EventStore(BatchSink):
    """
    Append-only event log in a single SQLite table.

    All access goes through one aiosqlite connection guarded by an
    asyncio.Lock, so a batch insert and a paginated read never interleave.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self):
        """
        Open the database and create the events table if needed.

        Raises:
            StoreError: If the database cannot be opened or the table created
        """
        if self._db is not None:
            return
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            db = await aiosqlite.connect(self.db_path)
        except (aiosqlite.Error, OSError) as e:
            log.error("store.open_failed", path=self.db_path, error=str(e))
            raise StoreError(f"failed to open database {self.db_path}: {e}") from e

        try:
            await db.execute("PRAGMA journal_mode = WAL")
            await db.execute("PRAGMA synchronous = NORMAL")
            await db.execute(f"""
                CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                    key TEXT NOT NULL,
                    timestamp DATETIME NOT NULL,
                    data TEXT
                )
            """)
            await db.commit()
        except aiosqlite.Error as e:
            await db.close()
            log.error("store.create_table_failed", path=self.db_path, error=str(e))
            raise StoreError(f"failed to create table: {e}") from e

        self._db = db
        log.info("store.opened", path=self.db_path)

    async def close(self):
        if self._db is not None:
            await self._db.close()
            self._db = None
            log.info("store.closed", path=self.db_path)

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreError("event store is not open")
        return self._db

    async def insert_batch(self, events: Sequence[Event]):
        """
        Insert a batch of events in one transaction.

        Either every row of the batch is committed or none is: a row that
        fails to serialize or insert rolls the whole batch back and the
        error propagates to the caller.
        """
        if not events:
            return

        async with self._lock:
            db = self._conn()
            try:
                for event in events:
                    ts = event.timestamp or datetime.now(timezone.utc)
                    await db.execute(
                        f"INSERT INTO {TABLE_NAME} (key, timestamp, data) VALUES (?, ?, ?)",
                        (event.key, format_timestamp(ts), orjson.dumps(event.data).decode()),
                    )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        log.debug("store.batch_inserted", count=len(events))

    async def get_events(self, limit: int, offset: int) -> Tuple[List[Event], int]:
        """
        Read one page of events, newest first.

        Args:
            limit: Maximum number of events in the page
            offset: Number of newest events to skip

        Returns:
            (page, total_count) where total_count is the full row count

        Raises:
            StoreError: If the query fails
        """
        async with self._lock:
            db = self._conn()
            try:
                async with db.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}") as cursor:
                    row = await cursor.fetchone()
                    total = row[0] if row else 0

                if limit < 1 or offset < 0 or offset >= total:
                    return [], total
                # No page can exceed the remaining rows; also keeps LIMIT inside SQLite's INTEGER range
                limit = min(limit, total - offset)

                events = []
                async with db.execute(
                    f"""
                    SELECT key, timestamp, data FROM {TABLE_NAME}
                    ORDER BY timestamp DESC, rowid DESC
                    LIMIT ? OFFSET ?
                    """,
                    (limit, offset),
                ) as cursor:
                    async for key, timestamp, data in cursor:
                        events.append(
                            Event(
                                key=key,
                                timestamp=datetime.fromisoformat(timestamp),
                                data=orjson.loads(data) if data else {},
                            )
                        )
            except aiosqlite.Error as e:
                log.error("store.query_failed", error=str(e))
                raise StoreError(f"failed to read events: {e}") from e

        return events, total

    async def count(self) -> int:
        _, total = await self.get_events(0, 0)
        return total

    async def commit_batch(self, events: Sequence[Event]) -> None:
        await self.insert_batch(events)

    async def health_check(self) -> bool:
        try:
            async with self._lock:
                async with self._conn().execute("SELECT 1") as cursor:
                    await cursor.fetchone()
            return True
        except Exception as e:
            log.warning("store.health_check_failed", error=str(e))
            return False
