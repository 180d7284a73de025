"""
Persisted extension state.

KeyValueStorage is the process-wide local storage area: it survives
restarts, has no transactions and reads/writes whole values per key.

TimeKeyedStore sits on one key of that storage and holds a mapping from
bookmark id to an entry carrying a trigger timestamp:

- expiringBookmarks: id -> {url, createdAt, expiresAt}
- reminders:         id -> {url, title, setTime, reminderTime, minutes}

get() and put() always move the whole mapping. Callers do
read-modify-write and are responsible for not interleaving two of them.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterable, List, Type, TypeVar

from sqlalchemy import delete, select

from togglemark.constants import (
    EXPIRING_BOOKMARKS_KEY, MS_PER_MINUTE, REMINDERS_KEY
)
from togglemark.models import StorageItem

logger = logging.getLogger(__name__)


class KeyValueStorage:
    """Key-value persistence backed by the storage table."""

    def __init__(self, db):
        self.db = db

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        """
        Read several keys at once.

        Args:
            keys: Keys to fetch

        Returns:
            Mapping holding only the keys that are present
        """
        keys = list(keys)
        if not keys:
            return {}
        with self.db.session() as session:
            rows = session.execute(
                select(StorageItem.key, StorageItem.value).where(StorageItem.key.in_(keys))
            ).all()
            return {key: value for key, value in rows}

    def set(self, mapping: Dict[str, Any]) -> None:
        """Write each key of mapping, replacing its previous value."""
        with self.db.session() as session:
            for key, value in mapping.items():
                item = session.get(StorageItem, key)
                if item is None:
                    session.add(StorageItem(key=key, value=value))
                else:
                    item.value = value

    def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        with self.db.session() as session:
            session.execute(delete(StorageItem).where(StorageItem.key.in_(keys)))

    def clear(self) -> None:
        with self.db.session() as session:
            session.execute(delete(StorageItem))


@dataclass
class ExpiringEntry:
    """A quick-save bookmark that deletes itself once expires_at passes."""
    url: str
    created_at: int
    expires_at: int

    @classmethod
    def create(cls, url: str, now: int, retention_ms: int) -> "ExpiringEntry":
        if retention_ms <= 0:
            raise ValueError("retention must be positive")
        return cls(url=url, created_at=now, expires_at=now + retention_ms)

    @property
    def trigger_time(self) -> int:
        return self.expires_at

    def is_matured(self, now: int) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExpiringEntry":
        return cls(
            url=data["url"],
            created_at=int(data["createdAt"]),
            expires_at=int(data["expiresAt"]),
        )


@dataclass
class ReminderEntry:
    """
    A one-shot reminder for a bookmark.

    url and title are copied when the reminder is set, so the reminder
    still works if the bookmark is later edited or removed. minutes is kept
    for display only; scheduling uses reminder_time.
    """
    url: str
    title: str
    set_time: int
    reminder_time: int
    minutes: int

    @classmethod
    def create(cls, url: str, title: str, minutes: int, now: int) -> "ReminderEntry":
        if minutes <= 0:
            raise ValueError("reminder duration must be positive")
        return cls(
            url=url,
            title=title,
            set_time=now,
            reminder_time=now + minutes * MS_PER_MINUTE,
            minutes=minutes,
        )

    @property
    def trigger_time(self) -> int:
        return self.reminder_time

    def is_matured(self, now: int) -> bool:
        return now >= self.reminder_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "setTime": self.set_time,
            "reminderTime": self.reminder_time,
            "minutes": self.minutes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReminderEntry":
        return cls(
            url=data["url"],
            title=data.get("title") or "",
            set_time=int(data["setTime"]),
            reminder_time=int(data["reminderTime"]),
            minutes=int(data.get("minutes") or 0),
        )


E = TypeVar("E", ExpiringEntry, ReminderEntry)


class TimeKeyedStore(Generic[E]):
    """
    Mapping from bookmark id to a time-keyed entry, stored under one key.

    There is no index by time: callers scan the mapping, which stays small
    (tens to low hundreds of entries).
    """

    def __init__(self, storage: KeyValueStorage, key: str, entry_type: Type[E]):
        self.storage = storage
        self.key = key
        self.entry_type = entry_type

    def get(self) -> Dict[str, E]:
        """Read the whole mapping. A missing key reads as empty."""
        raw = self.storage.get([self.key]).get(self.key) or {}
        if not isinstance(raw, dict):
            logger.error(f"Ignoring malformed {self.key} value of type {type(raw).__name__}")
            return {}
        store: Dict[str, E] = {}
        for entry_id, data in raw.items():
            try:
                store[str(entry_id)] = self.entry_type.from_dict(data)
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.error(f"Dropping malformed {self.key} record {entry_id!r}: {data!r}")
        return store

    def put(self, store: Dict[str, E]) -> None:
        """Replace the whole mapping."""
        self.storage.set({
            self.key: {entry_id: entry.to_dict() for entry_id, entry in store.items()}
        })

    def matured(self, now: int) -> List[str]:
        """Ids whose trigger time has passed."""
        return [entry_id for entry_id, entry in self.get().items() if entry.is_matured(now)]


def expiring_store(storage: KeyValueStorage) -> TimeKeyedStore[ExpiringEntry]:
    return TimeKeyedStore(storage, EXPIRING_BOOKMARKS_KEY, ExpiringEntry)


def reminder_store(storage: KeyValueStorage) -> TimeKeyedStore[ReminderEntry]:
    return TimeKeyedStore(storage, REMINDERS_KEY, ReminderEntry)
