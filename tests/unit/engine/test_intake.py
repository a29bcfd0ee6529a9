"""
Unit tests for engine.intake module.

Tests:
- Bursts coalesced into one batch per debounce window
- Deduplication within the unflushed batch, exactly-once processing
- Pushes during processing wait for the next batch
- max_batch_size splitting
- flush() and failure isolation
"""

import asyncio

import pytest

from ravensync.engine.intake import IntakeBuffer
from tests.fixtures.events import make_event
from tests.fixtures.pool import ManualScheduler


class Recorder:
    """Batch processor that records batches and can be held open."""

    def __init__(self) -> None:
        self.batches: list[list[str]] = []
        self.gate: asyncio.Event | None = None
        self.fail_next = False

    async def __call__(self, batch) -> None:
        self.batches.append([event.id for event in batch])
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("reducer bug")


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def intake(recorder: Recorder, scheduler: ManualScheduler) -> IntakeBuffer:
    return IntakeBuffer(recorder, delay=0.1, scheduler=scheduler)


class TestPush:
    async def test_first_push_arms_once(self, intake, scheduler):
        for _ in range(5):
            intake.push(make_event(42))
        assert len(scheduler.pending) == 1
        assert scheduler.pending[0].delay == 0.1
        assert intake.staged_count == 5
        assert intake.armed

    async def test_duplicate_in_batch_ignored(self, intake):
        event = make_event(42)
        assert intake.push(event) is True
        assert intake.push(event) is False
        assert intake.staged_count == 1

    async def test_same_id_accepted_after_flush(self, intake, recorder):
        event = make_event(42)
        intake.push(event)
        await intake.flush()
        assert intake.push(event) is True
        await intake.flush()
        assert recorder.batches == [[event.id], [event.id]]


class TestFire:
    async def test_burst_becomes_one_batch(self, intake, scheduler, recorder):
        events = [make_event(42) for _ in range(3)]
        for event in events:
            intake.push(event)
        scheduler.fire()
        await intake.wait_idle()
        assert recorder.batches == [[e.id for e in events]]
        assert intake.staged_count == 0
        assert not intake.is_processing

    async def test_each_event_processed_exactly_once(self, intake, scheduler, recorder):
        events = [make_event(42) for _ in range(6)]
        for event in events[:4]:
            intake.push(event)
        intake.push(events[0])
        scheduler.fire()
        await intake.wait_idle()
        for event in events[3:]:
            intake.push(event)
        scheduler.fire()
        await intake.wait_idle()
        first, second = recorder.batches
        assert first == [e.id for e in events[:4]]
        assert second == [e.id for e in events[3:]]
        assert len(set(first)) == len(first)

    async def test_push_during_processing_waits(self, intake, scheduler, recorder):
        recorder.gate = asyncio.Event()
        intake.push(make_event(42))
        scheduler.fire()
        await asyncio.sleep(0)
        assert intake.is_processing

        late = make_event(42)
        intake.push(late)
        assert scheduler.pending == []
        assert intake.staged_count == 1

        recorder.gate.set()
        await intake.wait_idle()
        assert len(scheduler.pending) == 1

        recorder.gate = None
        scheduler.fire()
        await intake.wait_idle()
        assert recorder.batches[-1] == [late.id]

    async def test_fire_with_nothing_staged(self, intake, scheduler, recorder):
        intake.push(make_event(42))
        await intake.flush()
        scheduler.fire()
        await intake.wait_idle()
        assert len(recorder.batches) == 1

    async def test_failed_batch_does_not_stop_buffer(self, intake, scheduler, recorder):
        recorder.fail_next = True
        intake.push(make_event(42))
        scheduler.fire()
        await intake.wait_idle()
        assert not intake.is_processing

        intake.push(make_event(42))
        scheduler.fire()
        await intake.wait_idle()
        assert len(recorder.batches) == 2


class TestMaxBatchSize:
    async def test_remainder_rearmed(self, recorder, scheduler):
        intake = IntakeBuffer(recorder, delay=0.1, max_batch_size=2, scheduler=scheduler)
        events = [make_event(42) for _ in range(3)]
        for event in events:
            intake.push(event)
        scheduler.fire()
        await intake.wait_idle()
        assert recorder.batches == [[events[0].id, events[1].id]]
        assert intake.staged_count == 1
        assert len(scheduler.pending) == 1

        scheduler.fire()
        await intake.wait_idle()
        assert recorder.batches[-1] == [events[2].id]

    async def test_remainder_still_deduplicated(self, recorder, scheduler):
        intake = IntakeBuffer(recorder, delay=0.1, max_batch_size=1, scheduler=scheduler)
        a, b = make_event(42), make_event(42)
        intake.push(a)
        intake.push(b)
        scheduler.fire()
        await intake.wait_idle()
        assert intake.push(b) is False

    def test_invalid(self, recorder):
        with pytest.raises(ValueError):
            IntakeBuffer(recorder, max_batch_size=0)


class TestFlush:
    async def test_bypasses_debounce(self, intake, scheduler, recorder):
        events = [make_event(42) for _ in range(3)]
        for event in events:
            intake.push(event)
        await intake.flush()
        assert recorder.batches == [[e.id for e in events]]
        assert scheduler.pending == []
        assert not intake.armed

    async def test_splits_by_max_batch_size(self, recorder, scheduler):
        intake = IntakeBuffer(recorder, max_batch_size=2, scheduler=scheduler)
        for _ in range(5):
            intake.push(make_event(42))
        await intake.flush()
        assert [len(b) for b in recorder.batches] == [2, 2, 1]

    async def test_waits_for_running_batch(self, intake, scheduler, recorder):
        recorder.gate = asyncio.Event()
        intake.push(make_event(42))
        scheduler.fire()
        await asyncio.sleep(0)
        intake.push(make_event(42))

        flush = asyncio.create_task(intake.flush())
        await asyncio.sleep(0)
        assert not flush.done()
        recorder.gate.set()
        await flush
        assert len(recorder.batches) == 2
        assert intake.staged_count == 0


class TestRealClock:
    async def test_fires_after_delay(self, recorder):
        intake = IntakeBuffer(recorder, delay=0.01)
        intake.push(make_event(42))
        await asyncio.sleep(0.05)
        await intake.wait_idle()
        assert len(recorder.batches) == 1
