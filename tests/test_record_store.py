"""Tests for the memory and JSONL record stores."""

import pytest

from core.errors import StorageUnavailableError
from core.record_store import (
    KIND_BAR,
    KIND_SIGNAL,
    JsonlRecordStore,
    MemoryRecordStore,
    create_record_store,
)


def test_recent_is_most_recent_first():
    store = MemoryRecordStore()
    for i in range(5):
        store.append(KIND_BAR, {"close": i})
    assert [r["close"] for r in store.recent(KIND_BAR, 3)] == [4, 3, 2]
    assert store.latest(KIND_BAR)["close"] == 4
    assert store.recent(KIND_BAR, 0) == []
    assert store.latest(KIND_SIGNAL) is None


def test_append_assigns_id_unless_present():
    store = MemoryRecordStore()
    generated = store.append(KIND_SIGNAL, {"direction": "UP"})
    assert generated
    assert store.append(KIND_SIGNAL, {"id": "abc"}) == "abc"
    assert store.latest(KIND_SIGNAL)["id"] == "abc"


def test_retention_per_kind():
    store = MemoryRecordStore(retention={KIND_BAR: 2})
    for i in range(4):
        store.append(KIND_BAR, {"close": i})
    assert store.count(KIND_BAR) == 2
    assert [r["close"] for r in store.recent(KIND_BAR, 10)] == [3, 2]


def test_returned_records_are_copies():
    store = MemoryRecordStore()
    store.append(KIND_BAR, {"close": 1})
    store.latest(KIND_BAR)["close"] = 99
    assert store.latest(KIND_BAR)["close"] == 1


def test_jsonl_store_rehydrates(tmp_path):
    first = JsonlRecordStore(tmp_path)
    first.append(KIND_BAR, {"close": 1.0})
    first.append(KIND_BAR, {"close": 2.0})
    assert (tmp_path / "bar.jsonl").exists()

    second = JsonlRecordStore(tmp_path)
    assert second.records_loaded == 2
    assert second.latest(KIND_BAR)["close"] == 2.0


def test_jsonl_store_skips_corrupt_lines(tmp_path):
    (tmp_path / "bar.jsonl").write_text('{"close": 1.0}\nnot json\n', encoding="utf-8")
    store = JsonlRecordStore(tmp_path)
    assert store.count(KIND_BAR) == 1


def test_jsonl_write_failure_raises_storage_error(tmp_path):
    store = JsonlRecordStore(tmp_path)
    (tmp_path / "signal.jsonl").mkdir()
    with pytest.raises(StorageUnavailableError):
        store.append(KIND_SIGNAL, {"direction": "UP"})
    assert store.count(KIND_SIGNAL) == 0


def test_factory(tmp_path):
    assert isinstance(create_record_store("memory"), MemoryRecordStore)
    assert isinstance(create_record_store("jsonl", tmp_path), JsonlRecordStore)
    with pytest.raises(ValueError):
        create_record_store("redis")
