"""Local plaintext history: JSON layout, corruption tolerance, overwrite rules."""
from __future__ import annotations

import json

import pytest

from moodledger.core.errors import StorageCorruption
from moodledger.repositories.local_cache import (
    JsonFileStorage,
    LocalMoodCache,
    MemoryStorage,
    deserialize_entries,
)


def test_put_then_load_round_trips_through_file(tmp_path):
    cache = LocalMoodCache(JsonFileStorage(tmp_path / "storage.json"))
    cache.put(19675, 2, "hi", timestamp=1_700_000_000_000)

    reopened = LocalMoodCache(JsonFileStorage(tmp_path / "storage.json"))
    entry = reopened.get(19675)

    assert entry.emoji == 2
    assert entry.message == "hi"
    assert entry.timestamp == 1_700_000_000_000


def test_stored_value_is_json_object_keyed_by_day_string(tmp_path):
    path = tmp_path / "storage.json"
    cache = LocalMoodCache(JsonFileStorage(path))
    cache.put(19675, 1, "feeling good", timestamp=5)

    outer = json.loads(path.read_text(encoding="utf-8"))
    history = json.loads(outer["moodTracker_history"])
    assert history == {"19675": {"emoji": 1, "message": "feeling good", "timestamp": 5}}


def test_same_day_write_overwrites():
    cache = LocalMoodCache(MemoryStorage())
    cache.put(19675, 1, "first", timestamp=1)
    cache.put(19675, 4, "second", timestamp=2)
    cache.put(19676, 0, "next day", timestamp=3)

    entries = cache.load()
    assert sorted(entries) == [19675, 19676]
    assert entries[19675].message == "second"


def test_corrupt_history_reads_as_empty():
    storage = MemoryStorage()
    storage.set_item("moodTracker_history", "{not json")
    cache = LocalMoodCache(storage)

    assert cache.load() == {}
    cache.put(19675, 3, "recovered", timestamp=1)
    assert cache.get(19675).message == "recovered"


def test_corrupt_storage_file_reads_as_empty(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("garbage", encoding="utf-8")
    assert LocalMoodCache(JsonFileStorage(path)).load() == {}


def test_deserialize_rejects_non_object_and_skips_bad_entries():
    with pytest.raises(StorageCorruption):
        deserialize_entries("[1, 2]")

    raw = json.dumps(
        {
            "19675": {"emoji": 1, "message": "ok", "timestamp": 1},
            "not-a-day": {"emoji": 1, "message": "x", "timestamp": 1},
            "19676": {"emoji": "nope"},
        }
    )
    assert list(deserialize_entries(raw)) == [19675]


def test_remove_item(tmp_path):
    storage = JsonFileStorage(tmp_path / "storage.json")
    storage.set_item("a", "1")
    storage.set_item("b", "2")
    storage.remove_item("a")
    assert storage.get_item("a") is None
    assert storage.get_item("b") == "2"
