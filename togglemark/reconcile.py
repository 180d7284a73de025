"""
Reconciliation of stored time-keyed entries against the clock.

Each entry is implicitly PENDING (now < trigger time), MATURED (now >=
trigger time, not yet acted on) or RETIRED (acted on and gone from the
store). The state is never stored; it is re-derived from timestamps every
time a sweep or an alarm runs. Maturity is therefore only noticed at those
points, and a late sweep simply catches up.

All operations are idempotent at the granularity of "remove if present",
so re-running after a crash is safe.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from togglemark.alarms import reminder_alarm_name
from togglemark.sinks import Sinks, make_notification_id
from togglemark.storage import ExpiringEntry, ReminderEntry, TimeKeyedStore

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one expiry sweep, by bookmark id."""
    removed: List[str] = field(default_factory=list)
    already_absent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)

    @property
    def retired(self) -> List[str]:
        """Every matured id; all of them left the store."""
        return self.removed + self.already_absent + self.failed

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "removed": self.removed,
            "already_absent": self.already_absent,
            "failed": self.failed,
            "pending": self.pending,
        }


def sweep_expired(bookmarks, store: TimeKeyedStore[ExpiringEntry], now: int) -> SweepResult:
    """
    Remove every quick save whose expiry time has passed.

    The store is snapshotted once, each matured bookmark is removed on its
    own, and the reduced store is written back in a single put. A matured
    entry is retired even when removing its bookmark fails, so an entry that
    can never succeed does not get retried forever.

    Args:
        bookmarks: BookmarkStore
        store: expiringBookmarks store
        now: Sweep time in ms

    Returns:
        SweepResult listing what happened to each entry
    """
    entries = store.get()
    result = SweepResult()

    for bookmark_id, entry in entries.items():
        if not entry.is_matured(now):
            result.pending.append(bookmark_id)
            continue
        try:
            if bookmarks.remove(bookmark_id):
                result.removed.append(bookmark_id)
                logger.info(f"Expired bookmark {bookmark_id} removed: {entry.url}")
            else:
                result.already_absent.append(bookmark_id)
                logger.debug(f"Expired bookmark {bookmark_id} was already gone")
        except Exception as e:
            result.failed.append(bookmark_id)
            logger.error(f"Error removing expired bookmark {bookmark_id}: {e}")

    if result.retired:
        retired = set(result.retired)
        remaining = {bid: e for bid, e in entries.items() if bid not in retired}
        store.put(remaining)

    return result


def add_expiring(store: TimeKeyedStore[ExpiringEntry], bookmark_id: str, url: str,
                 now: int, retention_ms: int) -> ExpiringEntry:
    """Start the expiry clock for a newly created quick save."""
    entry = ExpiringEntry.create(url, now, retention_ms)
    entries = store.get()
    entries[bookmark_id] = entry
    store.put(entries)
    return entry


def forget_expiring(store: TimeKeyedStore[ExpiringEntry], bookmark_ids: Iterable[str]) -> List[str]:
    """
    Drop expiry records for bookmarks that no longer exist.

    Returns:
        The ids that actually had a record
    """
    entries = store.get()
    forgotten = [bid for bid in dict.fromkeys(bookmark_ids) if bid in entries]
    if forgotten:
        for bid in forgotten:
            del entries[bid]
        store.put(entries)
    return forgotten


def prune_orphans(bookmarks, store: TimeKeyedStore[ExpiringEntry]) -> List[str]:
    """
    Drop expiry records whose bookmark was removed behind our back.

    Reminders are not pruned: they carry their own url and title.
    """
    orphans = [bid for bid in store.get() if bookmarks.get(bid) is None]
    if orphans:
        logger.info(f"Pruning {len(orphans)} orphaned expiry record(s)")
        return forget_expiring(store, orphans)
    return []


def set_reminder(store: TimeKeyedStore[ReminderEntry], scheduler, bookmark_id: str,
                 url: str, title: str, minutes: int, now: int) -> ReminderEntry:
    """
    Set (or replace) the reminder for a bookmark.

    The previous one-shot alarm for the same id is cleared before the new one
    is created, so one bookmark never has two pending reminder alarms.
    """
    entry = ReminderEntry.create(url, title, minutes, now)

    reminders = store.get()
    reminders[bookmark_id] = entry
    store.put(reminders)

    name = reminder_alarm_name(bookmark_id)
    scheduler.clear(name)
    scheduler.schedule_once(name, entry.reminder_time)

    logger.info(f"Reminder set for bookmark {bookmark_id} for {minutes} minutes")
    return entry


def clear_reminder(store: TimeKeyedStore[ReminderEntry], scheduler, bookmark_id: str) -> bool:
    """Cancel a pending reminder. Returns False if none was set."""
    had_alarm = scheduler.clear(reminder_alarm_name(bookmark_id))
    reminders = store.get()
    if bookmark_id not in reminders:
        return had_alarm
    del reminders[bookmark_id]
    store.put(reminders)
    return True


def rearm_reminders(store: TimeKeyedStore[ReminderEntry], scheduler) -> List[str]:
    """
    Recreate the alarm of every stored reminder that lost it.

    A one-shot alarm is gone once it fires, so a reminder whose delivery
    was cut short keeps its entry but has nothing left to wake it. Overdue
    ones fire on the next poll.

    Returns:
        Ids whose alarm was recreated
    """
    rearmed = []
    for bookmark_id, entry in store.get().items():
        name = reminder_alarm_name(bookmark_id)
        if scheduler.get(name) is None:
            scheduler.schedule_once(name, entry.reminder_time)
            rearmed.append(bookmark_id)
    if rearmed:
        logger.info(f"Rearmed {len(rearmed)} reminder alarm(s)")
    return rearmed


def trigger_reminder(store: TimeKeyedStore[ReminderEntry], bookmark_id: str, sinks: Sinks,
                     config, now: int, scheduler=None) -> Optional[ReminderEntry]:
    """
    Deliver a reminder whose alarm fired.

    Notification, tone and navigation run concurrently and independently;
    all of them are attempted before the entry is removed. A crash part way
    through leaves the entry in place for rearm_reminders() to pick up.

    An entry that is not due yet was left behind by a stale alarm; it is
    not delivered, and its own alarm is recreated when a scheduler is given.

    Returns:
        The delivered entry, or None if there was nothing to deliver
    """
    reminders = store.get()
    entry = reminders.get(bookmark_id)
    if entry is None:
        logger.debug(f"No reminder stored for {bookmark_id}; ignoring alarm")
        return None
    if not entry.is_matured(now):
        logger.warning(f"Reminder for {bookmark_id} is not due until {entry.reminder_time}; ignoring alarm")
        if scheduler is not None:
            scheduler.schedule_once(reminder_alarm_name(bookmark_id), entry.reminder_time)
        return None

    effects = {
        "notification": lambda: sinks.notifier.notify(
            make_notification_id(now),
            config.notification_title,
            f"Time to review: {entry.title}",
            config.notification_icon,
        ),
        "tone": lambda: sinks.tone.play(
            config.tone_frequency, config.tone_duration_ms, config.tone_volume
        ),
        "open": lambda: sinks.opener.open(entry.url),
    }
    with ThreadPoolExecutor(max_workers=len(effects)) as executor:
        futures = {name: executor.submit(effect) for name, effect in effects.items()}
    for name, future in futures.items():
        error = future.exception()
        if error is not None:
            logger.error(f"Reminder {name} failed for {bookmark_id}: {error}")

    # A reminder replaced while the side effects ran stays in place
    reminders = store.get()
    current = reminders.get(bookmark_id)
    if current == entry:
        del reminders[bookmark_id]
        store.put(reminders)

    logger.info(f"Reminder triggered for bookmark {bookmark_id}: {entry.title}")
    return entry
