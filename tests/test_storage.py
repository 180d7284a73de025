"""Tests for key-value storage and the time-keyed stores."""
import logging

import pytest

from togglemark.constants import EXPIRING_BOOKMARKS_KEY, REMINDERS_KEY
from togglemark.storage import (
    ExpiringEntry, ReminderEntry, TimeKeyedStore, expiring_store, reminder_store
)

from conftest import DAY, MINUTE, T0


class TestKeyValueStorage:
    """Tests for KeyValueStorage."""

    def test_get_missing_keys_returns_empty(self, storage):
        assert storage.get(["nope"]) == {}

    def test_get_no_keys(self, storage):
        assert storage.get([]) == {}

    def test_set_then_get(self, storage):
        storage.set({"quickSavesFolderId": "abc", "other": {"a": 1}})
        assert storage.get(["quickSavesFolderId", "other"]) == {
            "quickSavesFolderId": "abc",
            "other": {"a": 1},
        }

    def test_get_returns_only_present_keys(self, storage):
        storage.set({"a": 1})
        assert storage.get(["a", "b"]) == {"a": 1}

    def test_set_replaces_whole_value(self, storage):
        storage.set({"k": {"x": 1, "y": 2}})
        storage.set({"k": {"z": 3}})
        assert storage.get(["k"]) == {"k": {"z": 3}}

    def test_survives_new_instance(self, db, storage):
        from togglemark.storage import KeyValueStorage
        storage.set({"k": [1, 2, 3]})
        assert KeyValueStorage(db).get(["k"]) == {"k": [1, 2, 3]}

    def test_remove(self, storage):
        storage.set({"a": 1, "b": 2})
        storage.remove(["a"])
        assert storage.get(["a", "b"]) == {"b": 2}

    def test_clear(self, storage):
        storage.set({"a": 1, "b": 2})
        storage.clear()
        assert storage.get(["a", "b"]) == {}


class TestEntries:
    """Tests for entry construction and maturity."""

    def test_expiring_entry_offset_is_exact(self):
        entry = ExpiringEntry.create("https://example.com", T0, 7 * DAY)
        assert entry.created_at == T0
        assert entry.expires_at == T0 + 604_800_000
        assert entry.expires_at > entry.created_at

    def test_expiring_entry_rejects_non_positive_retention(self):
        with pytest.raises(ValueError):
            ExpiringEntry.create("https://example.com", T0, 0)

    def test_expiring_entry_maturity_boundary(self):
        entry = ExpiringEntry.create("https://example.com", T0, 7 * DAY)
        assert not entry.is_matured(T0 + 7 * DAY - 1)
        assert entry.is_matured(T0 + 7 * DAY)

    def test_reminder_entry_offset_is_exact(self):
        entry = ReminderEntry.create("https://example.com", "Example", 10, T0)
        assert entry.set_time == T0
        assert entry.reminder_time == T0 + 10 * 60_000
        assert entry.minutes == 10
        assert entry.trigger_time == entry.reminder_time

    def test_reminder_entry_rejects_non_positive_minutes(self):
        with pytest.raises(ValueError):
            ReminderEntry.create("https://example.com", "Example", 0, T0)

    def test_persisted_shape(self):
        expiring = ExpiringEntry("https://a.test", T0, T0 + DAY)
        assert expiring.to_dict() == {"url": "https://a.test", "createdAt": T0, "expiresAt": T0 + DAY}

        reminder = ReminderEntry("https://a.test", "A", T0, T0 + 5 * MINUTE, 5)
        assert reminder.to_dict() == {
            "url": "https://a.test",
            "title": "A",
            "setTime": T0,
            "reminderTime": T0 + 5 * MINUTE,
            "minutes": 5,
        }


class TestTimeKeyedStore:
    """Tests for TimeKeyedStore get/put."""

    def test_empty_store(self, storage):
        assert expiring_store(storage).get() == {}
        assert reminder_store(storage).get() == {}

    def test_round_trip_expiring(self, storage):
        store = expiring_store(storage)
        entry = ExpiringEntry.create("https://example.com/ä?q=1", T0, 7 * DAY)
        store.put({"bm1": entry})

        loaded = store.get()
        assert loaded == {"bm1": entry}
        assert loaded["bm1"].to_dict() == entry.to_dict()

    def test_round_trip_reminder(self, storage):
        store = reminder_store(storage)
        entry = ReminderEntry.create("https://example.com", "Title “quoted”", 15, T0)
        store.put({"bm1": entry})
        assert store.get() == {"bm1": entry}

    def test_put_replaces_mapping(self, storage):
        store = expiring_store(storage)
        store.put({"a": ExpiringEntry("https://a.test", T0, T0 + 1)})
        store.put({"b": ExpiringEntry("https://b.test", T0, T0 + 1)})
        assert list(store.get()) == ["b"]

    def test_stores_are_independent(self, storage):
        expiring_store(storage).put({"x": ExpiringEntry("https://a.test", T0, T0 + 1)})
        assert reminder_store(storage).get() == {}

    def test_persisted_under_well_known_keys(self, storage):
        expiring_store(storage).put({"x": ExpiringEntry("https://a.test", T0, T0 + 1)})
        reminder_store(storage).put({"y": ReminderEntry("https://b.test", "B", T0, T0 + MINUTE, 1)})

        raw = storage.get([EXPIRING_BOOKMARKS_KEY, REMINDERS_KEY])
        assert raw[EXPIRING_BOOKMARKS_KEY] == {"x": {"url": "https://a.test", "createdAt": T0, "expiresAt": T0 + 1}}
        assert raw[REMINDERS_KEY]["y"]["reminderTime"] == T0 + MINUTE

    def test_malformed_records_are_skipped(self, storage, caplog):
        storage.set({EXPIRING_BOOKMARKS_KEY: {
            "good": {"url": "https://a.test", "createdAt": T0, "expiresAt": T0 + 1},
            "bad": {"url": "https://b.test"},
            "worse": "not a record",
        }})
        with caplog.at_level(logging.ERROR, logger="togglemark.storage"):
            assert list(expiring_store(storage).get()) == ["good"]
        dropped = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(dropped) == 2
        assert "'bad'" in dropped[0].getMessage()

    def test_malformed_value_reads_as_empty(self, storage):
        storage.set({REMINDERS_KEY: ["not", "a", "mapping"]})
        assert reminder_store(storage).get() == {}

    def test_matured(self, storage):
        store = expiring_store(storage)
        store.put({
            "old": ExpiringEntry("https://a.test", T0, T0 + DAY),
            "new": ExpiringEntry("https://b.test", T0, T0 + 3 * DAY),
        })
        assert store.matured(T0 + DAY) == ["old"]
        assert sorted(store.matured(T0 + 3 * DAY)) == ["new", "old"]

    def test_custom_key(self, storage):
        store = TimeKeyedStore(storage, "archive", ExpiringEntry)
        store.put({"z": ExpiringEntry("https://z.test", T0, T0 + 1)})
        assert "archive" in storage.get(["archive"])
