"""Tests for the flush scheduler."""
import asyncio
import pytest
from tlytics.event_models import Event
from tlytics.services.buffer import IngestionBuffer
from tlytics.services.scheduler import FlushScheduler, SchedulerState
from tlytics.storage.sqlite import EventStore
from fakes import GatedSink, RecordingSink


@pytest.mark.asyncio
async def test_periodic_flush():
    """Test queued events are drained once the period elapses."""
    sink = RecordingSink()
    buffer = IngestionBuffer(sink)
    scheduler = FlushScheduler(buffer, period=0.05)
    scheduler.start()
    try:
        buffer.emit(Event(key="test_event_1", data={"user": "alice"}))
        buffer.emit(Event(key="test_event_2", data={"user": "bob"}))
        await asyncio.sleep(0.2)

        assert [e.key for e in sink.events] == ["test_event_1", "test_event_2"]
        assert scheduler.state is SchedulerState.RUNNING
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_performs_final_drain(tmp_path):
    """Test an event emitted right before stop is durable when stop returns."""
    store = EventStore(str(tmp_path / "events.db"))
    await store.open()
    try:
        buffer = IngestionBuffer(store)
        scheduler = FlushScheduler(buffer, period=3600)
        scheduler.start()

        buffer.emit(Event(key="last_words"))
        await scheduler.stop()

        events, total = await store.get_events(10, 0)
        assert total == 1
        assert events[0].key == "last_words"
        assert scheduler.state is SchedulerState.STOPPED
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_manual_flush_outside_cadence():
    """Test flush drains immediately with a long period."""
    sink = RecordingSink()
    buffer = IngestionBuffer(sink)
    scheduler = FlushScheduler(buffer, period=3600)
    scheduler.start()
    try:
        buffer.emit(Event(key="manual"))
        assert sink.batches == []

        flushed = await scheduler.flush()

        assert [e.key for e in flushed] == ["manual"]
        assert len(sink.batches) == 1
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_no_drains_after_stop():
    """Test a stopped scheduler neither flushes nor restarts."""
    sink = RecordingSink()
    buffer = IngestionBuffer(sink)
    scheduler = FlushScheduler(buffer, period=0.01)
    scheduler.start()
    await scheduler.stop()

    buffer.emit(Event(key="late"))
    assert await scheduler.flush() == []
    await asyncio.sleep(0.05)

    assert sink.batches == []
    assert len(buffer) == 1
    with pytest.raises(RuntimeError):
        scheduler.start()


@pytest.mark.asyncio
async def test_stop_is_one_shot():
    """Test calling stop twice drains only once."""
    sink = RecordingSink()
    buffer = IngestionBuffer(sink)
    scheduler = FlushScheduler(buffer, period=3600)
    scheduler.start()
    buffer.emit(Event(key="once"))

    await scheduler.stop()
    await scheduler.stop()

    assert len(sink.batches) == 1


@pytest.mark.asyncio
async def test_concurrent_stop_waits_for_final_drain():
    """Test a second stop call returns only after the final drain completes."""
    sink = GatedSink()
    buffer = IngestionBuffer(sink)
    scheduler = FlushScheduler(buffer, period=3600)
    scheduler.start()
    buffer.emit(Event(key="slow"))

    first = asyncio.create_task(scheduler.stop())
    await sink.entered.wait()
    second = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0.02)
    assert not second.done()

    sink.release.set()
    await asyncio.gather(first, second)
    assert [e.key for e in sink.events] == ["slow"]


@pytest.mark.asyncio
async def test_stop_without_start_still_drains():
    """Test stopping a never-started scheduler flushes what was queued."""
    sink = RecordingSink()
    buffer = IngestionBuffer(sink)
    scheduler = FlushScheduler(buffer, period=3600)
    buffer.emit(Event(key="queued"))

    await scheduler.stop()

    assert [e.key for e in sink.events] == ["queued"]
    assert scheduler.state is SchedulerState.STOPPED


def test_period_must_be_positive():
    """Test a zero period is rejected."""
    with pytest.raises(ValueError):
        FlushScheduler(IngestionBuffer(RecordingSink()), period=0)
