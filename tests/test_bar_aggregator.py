"""Tests for tick-to-bar aggregation."""

from datetime import datetime, timedelta, timezone

from core.errors import StorageUnavailableError
from core.events import EventType, PipelineEventBus
from core.record_store import KIND_BAR, MemoryRecordStore
from logic.bar_aggregator import BarAggregator, floor_to_interval


class _BrokenStore(MemoryRecordStore):
    def append(self, kind, record):
        raise StorageUnavailableError("disk gone")


def test_first_tick_opens_bar(clock):
    agg = BarAggregator(clock=clock)
    bar = agg.ingest(1.0850)
    assert bar.open == bar.high == bar.low == bar.close == 1.0850
    assert bar.count == 1
    assert agg.current() is not None
    assert agg.history() == []


def test_ticks_update_high_low_close(clock):
    agg = BarAggregator(clock=clock)
    for price in (1.0850, 1.0860, 1.0840, 1.0855):
        agg.ingest(price)
    bar = agg.current()
    assert bar.open == 1.0850
    assert bar.high == 1.0860
    assert bar.low == 1.0840
    assert bar.close == 1.0855
    assert bar.count == 4
    assert bar.is_consistent


def test_bar_closes_after_interval(clock):
    store = MemoryRecordStore()
    agg = BarAggregator(interval_seconds=60, store=store, clock=clock)
    agg.ingest(1.0850)
    clock.advance(30)
    assert agg.tick() is None

    clock.advance(30)
    closed = agg.tick()
    assert closed is not None
    assert agg.current() is None
    assert agg.history() == [closed]
    assert store.latest(KIND_BAR)["close"] == 1.0850


def test_at_most_one_open_bar(clock):
    agg = BarAggregator(interval_seconds=60, clock=clock)
    for i in range(5):
        agg.ingest(1.08 + i * 0.0001)
        clock.advance(61)
        agg.tick()
    agg.ingest(1.09)
    assert agg.current() is not None
    assert len(agg.history()) == 5
    assert all(b.is_consistent for b in agg.history())


def test_no_bar_without_ticks(clock):
    agg = BarAggregator(clock=clock)
    clock.advance(600)
    assert agg.tick() is None
    assert agg.close_current() is None


def test_history_is_bounded(clock):
    agg = BarAggregator(retention=3, clock=clock)
    for i in range(5):
        agg.ingest(1.0 + i)
        agg.close_current()
    closes = [b.close for b in agg.history()]
    assert closes == [3.0, 4.0, 5.0]
    assert [b.close for b in agg.history(2)] == [4.0, 5.0]
    assert agg.latest_bar().close == 5.0


def test_wall_clock_alignment(clock):
    clock.now = datetime(2024, 1, 1, 12, 0, 42, tzinfo=timezone.utc)
    agg = BarAggregator(align_to_wall_clock=True, clock=clock)
    bar = agg.ingest(1.0)
    assert bar.start_time == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert floor_to_interval(clock.now + timedelta(seconds=30), 60) == datetime(2024, 1, 1, 12, 1, tzinfo=timezone.utc)


def test_closed_bar_emitted_and_updates_throttled(clock):
    events = PipelineEventBus()
    closed, updates = [], []
    events.on_bar_closed(closed.append)
    events.on_bar_update(updates.append)
    agg = BarAggregator(events=events, update_throttle_seconds=1.0, clock=clock)

    agg.ingest(1.0)
    agg.ingest(1.1)           # same instant, throttled
    clock.advance(1)
    agg.ingest(1.2)
    assert len(updates) == 2

    agg.close_current()
    assert len(closed) == 1
    assert closed[0].close == 1.2


def test_store_failure_does_not_lose_bar(clock):
    agg = BarAggregator(store=_BrokenStore(), clock=clock)
    agg.ingest(1.0)
    bar = agg.close_current()
    assert agg.history() == [bar]
    assert agg.store_failures == 1


def test_load_history_from_store(clock):
    store = MemoryRecordStore()
    first = BarAggregator(store=store, clock=clock)
    for i in range(3):
        first.ingest(1.0 + i)
        clock.advance(60)
        first.tick()

    second = BarAggregator(store=store, clock=clock)
    assert second.load_history() == 3
    assert [b.close for b in second.history()] == [1.0, 2.0, 3.0]
