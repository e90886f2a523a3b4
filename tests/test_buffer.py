"""Tests for the ingestion buffer."""
import asyncio
import pytest
from datetime import datetime, timezone
from tlytics.event_models import Event
from tlytics.services.buffer import IngestionBuffer
from tlytics.storage.sqlite import EventStore
from fakes import GatedSink, RecordingSink


@pytest.mark.asyncio
async def test_emit_assigns_timestamp():
    """Test emit stamps events that have no timestamp."""
    buffer = IngestionBuffer(RecordingSink())
    before = datetime.now(timezone.utc)

    queued = buffer.emit(Event(key="login"))

    assert queued.timestamp is not None
    assert before <= queued.timestamp <= datetime.now(timezone.utc)
    assert len(buffer) == 1


@pytest.mark.asyncio
async def test_emit_keeps_explicit_timestamp():
    """Test emit leaves a caller-provided timestamp alone."""
    buffer = IngestionBuffer(RecordingSink())
    ts = datetime(2025, 5, 1, tzinfo=timezone.utc)

    queued = buffer.emit(Event(key="login", timestamp=ts))

    assert queued.timestamp == ts


@pytest.mark.asyncio
async def test_drain_hands_batch_in_emission_order():
    """Test drain empties the buffer and delivers events in order."""
    sink = RecordingSink()
    buffer = IngestionBuffer(sink)
    for i in range(5):
        buffer.emit(Event(key="ordered", data={"index": i}))

    drained = await buffer.drain()

    assert [e.data["index"] for e in drained] == [0, 1, 2, 3, 4]
    assert len(sink.batches) == 1
    assert [e.data["index"] for e in sink.batches[0]] == [0, 1, 2, 3, 4]
    assert len(buffer) == 0


@pytest.mark.asyncio
async def test_drain_on_empty_buffer_is_noop():
    """Test draining twice performs a single write."""
    sink = RecordingSink()
    buffer = IngestionBuffer(sink)
    buffer.emit(Event(key="once"))

    first = await buffer.drain()
    second = await buffer.drain()

    assert len(first) == 1
    assert second == []
    assert len(sink.batches) == 1


@pytest.mark.asyncio
async def test_emit_not_blocked_by_slow_sink():
    """Test producers keep emitting while a drain waits on its sink."""
    sink = GatedSink()
    buffer = IngestionBuffer(sink)
    buffer.emit(Event(key="first"))

    drain_task = asyncio.create_task(buffer.drain())
    await sink.entered.wait()

    buffer.emit(Event(key="second"))
    assert len(buffer) == 1

    sink.release.set()
    await drain_task
    assert [e.key for e in sink.events] == ["first"]
    assert len(buffer) == 1


@pytest.mark.asyncio
async def test_drains_do_not_overlap():
    """Test a second drain waits for the first one's sink call to finish."""
    sink = GatedSink()
    buffer = IngestionBuffer(sink)
    buffer.emit(Event(key="a"))

    first = asyncio.create_task(buffer.drain())
    await sink.entered.wait()
    buffer.emit(Event(key="b"))
    second = asyncio.create_task(buffer.drain())
    await asyncio.sleep(0.05)

    assert sink.calls == 1

    sink.release.set()
    await asyncio.gather(first, second)
    assert [[e.key for e in batch] for batch in sink.batches] == [["a"], ["b"]]


@pytest.mark.asyncio
async def test_concurrent_producers_lose_and_duplicate_nothing():
    """Test threaded producers racing drains deliver every event exactly once."""
    sink = RecordingSink()
    buffer = IngestionBuffer(sink)
    per_worker = 250

    def produce(worker: int):
        for i in range(per_worker):
            buffer.emit(Event(key="load", data={"worker": worker, "i": i}))

    async def drainer():
        for _ in range(50):
            await buffer.drain()
            await asyncio.sleep(0)

    await asyncio.gather(*(asyncio.to_thread(produce, w) for w in range(4)), drainer())
    await buffer.drain()

    seen = [(e.data["worker"], e.data["i"]) for e in sink.events]
    assert len(seen) == 4 * per_worker
    assert len(set(seen)) == 4 * per_worker
    for worker in range(4):
        assert [i for w, i in seen if w == worker] == list(range(per_worker))


@pytest.mark.asyncio
async def test_restore_puts_events_at_head():
    """Test restored events drain before newer ones."""
    sink = RecordingSink()
    buffer = IngestionBuffer(sink)
    buffer.emit(Event(key="new"))

    buffer.restore([Event(key="old-1"), Event(key="old-2")])
    await buffer.drain()

    assert [e.key for e in sink.events] == ["old-1", "old-2", "new"]


@pytest.mark.asyncio
async def test_no_visibility_before_drain(tmp_path):
    """Test emitted events reach the store only after a drain."""
    store = EventStore(str(tmp_path / "events.db"))
    await store.open()
    try:
        buffer = IngestionBuffer(store)
        buffer.emit(Event(key="manual_test", data={"test": "value"}))

        events, total = await store.get_events(10, 0)
        assert total == 0
        assert events == []

        await buffer.drain()

        events, total = await store.get_events(10, 0)
        assert total == 1
        assert events[0].key == "manual_test"
        assert events[0].data == {"test": "value"}
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_failed_batch_leaves_store_empty(tmp_path):
    """Test an unserializable event drops its whole batch without raising."""
    store = EventStore(str(tmp_path / "events.db"))
    await store.open()
    try:
        buffer = IngestionBuffer(store)
        buffer.emit(Event(key="good"))
        buffer.emit(Event(key="bad", data={"obj": object()}))

        drained = await buffer.drain()

        assert len(drained) == 2
        assert len(buffer) == 0
        _, total = await store.get_events(10, 0)
        assert total == 0
    finally:
        await store.close()
