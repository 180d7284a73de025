"""
Tests for togglemark/reconcile.py.

Covers the expiry sweep, expiry bookkeeping and the reminder lifecycle
against real bookmark, storage and alarm services.
"""
from unittest.mock import MagicMock

import pytest

from togglemark.reconcile import (
    add_expiring, clear_reminder, forget_expiring, prune_orphans,
    rearm_reminders, set_reminder, sweep_expired, trigger_reminder
)
from togglemark.storage import ExpiringEntry, ReminderEntry, expiring_store, reminder_store

from conftest import DAY, MINUTE, T0


@pytest.fixture
def expiring(storage):
    return expiring_store(storage)


@pytest.fixture
def reminders(storage):
    return reminder_store(storage)


def quick_save(bookmarks, expiring, url, now, retention=7 * DAY):
    node = bookmarks.create(title=url, url=url)
    add_expiring(expiring, node.id, url, now, retention)
    return node


class TestSweep:
    """Test sweep_expired."""

    def test_sweep_before_expiry_does_nothing(self, bookmarks, expiring):
        """At t0 + 7d - 1ms a quick save is still pending."""
        node = quick_save(bookmarks, expiring, "https://a.test", T0)

        result = sweep_expired(bookmarks, expiring, T0 + 7 * DAY - 1)

        assert result.retired == []
        assert result.pending == [node.id]
        assert bookmarks.get(node.id) is not None
        assert node.id in expiring.get()

    def test_sweep_at_expiry_removes(self, bookmarks, expiring):
        """At exactly t0 + 7d the bookmark and its record are gone."""
        node = quick_save(bookmarks, expiring, "https://a.test", T0)

        result = sweep_expired(bookmarks, expiring, T0 + 7 * DAY)

        assert result.removed == [node.id]
        assert bookmarks.get(node.id) is None
        assert expiring.get() == {}

    def test_sweep_keeps_pending_entries(self, bookmarks, expiring):
        old = quick_save(bookmarks, expiring, "https://old.test", T0)
        new = quick_save(bookmarks, expiring, "https://new.test", T0 + 3 * DAY)

        result = sweep_expired(bookmarks, expiring, T0 + 7 * DAY)

        assert result.removed == [old.id]
        assert result.pending == [new.id]
        assert list(expiring.get()) == [new.id]
        assert bookmarks.get(new.id) is not None

    def test_sweep_is_idempotent(self, bookmarks, expiring):
        quick_save(bookmarks, expiring, "https://a.test", T0)
        keep = quick_save(bookmarks, expiring, "https://b.test", T0 + 5 * DAY)

        sweep_expired(bookmarks, expiring, T0 + 8 * DAY)
        after_first = expiring.get()
        bookmarks_after_first = bookmarks.all()

        second = sweep_expired(bookmarks, expiring, T0 + 8 * DAY)

        assert second.retired == []
        assert expiring.get() == after_first
        assert bookmarks.all() == bookmarks_after_first
        assert list(after_first) == [keep.id]

    def test_bookmark_already_gone_is_retired(self, bookmarks, expiring):
        expiring.put({"ghost": ExpiringEntry("https://ghost.test", T0, T0 + DAY)})

        result = sweep_expired(bookmarks, expiring, T0 + DAY)

        assert result.already_absent == ["ghost"]
        assert expiring.get() == {}

    def test_failed_removal_is_retired_and_others_continue(self, bookmarks, expiring):
        """One failing removal neither blocks the others nor stays in the store."""
        a = quick_save(bookmarks, expiring, "https://a.test", T0)
        b = quick_save(bookmarks, expiring, "https://b.test", T0)

        flaky = MagicMock(wraps=bookmarks)

        def remove(bookmark_id):
            if bookmark_id == a.id:
                raise RuntimeError("host refused")
            return bookmarks.remove(bookmark_id)

        flaky.remove.side_effect = remove

        result = sweep_expired(flaky, expiring, T0 + 7 * DAY)

        assert result.failed == [a.id]
        assert result.removed == [b.id]
        assert expiring.get() == {}
        assert bookmarks.get(a.id) is not None

    def test_sweep_without_matured_entries_does_not_write(self, bookmarks, expiring):
        quick_save(bookmarks, expiring, "https://a.test", T0)
        store = MagicMock(wraps=expiring)

        sweep_expired(bookmarks, store, T0)

        store.put.assert_not_called()

    def test_sweep_on_empty_store(self, bookmarks, expiring):
        result = sweep_expired(bookmarks, expiring, T0)
        assert result.to_dict() == {"removed": [], "already_absent": [], "failed": [], "pending": []}


class TestExpiryBookkeeping:
    """Test add_expiring, forget_expiring and prune_orphans."""

    def test_add_expiring_offset(self, expiring):
        entry = add_expiring(expiring, "bm1", "https://a.test", T0, 7 * DAY)
        assert entry.expires_at - entry.created_at == 604_800_000
        assert expiring.get()["bm1"] == entry

    def test_add_expiring_keeps_other_entries(self, expiring):
        add_expiring(expiring, "a", "https://a.test", T0, DAY)
        add_expiring(expiring, "b", "https://b.test", T0, DAY)
        assert sorted(expiring.get()) == ["a", "b"]

    def test_forget_expiring(self, expiring):
        add_expiring(expiring, "a", "https://a.test", T0, DAY)
        add_expiring(expiring, "b", "https://b.test", T0, DAY)
        assert forget_expiring(expiring, ["a", "missing", "a"]) == ["a"]
        assert list(expiring.get()) == ["b"]

    def test_forget_nothing(self, expiring):
        assert forget_expiring(expiring, ["missing"]) == []

    def test_prune_orphans(self, bookmarks, expiring):
        live = quick_save(bookmarks, expiring, "https://a.test", T0)
        add_expiring(expiring, "gone", "https://gone.test", T0, DAY)

        assert prune_orphans(bookmarks, expiring) == ["gone"]
        assert list(expiring.get()) == [live.id]


class TestReminders:
    """Test set_reminder, clear_reminder and trigger_reminder."""

    def test_set_reminder(self, reminders, scheduler):
        entry = set_reminder(reminders, scheduler, "bm1", "https://a.test", "A", 10, T0)

        assert entry.reminder_time == T0 + 600_000
        assert reminders.get()["bm1"] == entry
        assert scheduler.get("reminder_bm1").scheduled_time == T0 + 600_000

    def test_replace_reminder_leaves_single_alarm(self, reminders, scheduler):
        """Setting 10 min then 5 min leaves one alarm at the second set time + 5 min."""
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "A", 10, T0)
        second = T0 + 2 * MINUTE
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "A", 5, second)

        alarms = scheduler.all()
        assert [a.name for a in alarms] == ["reminder_bm1"]
        assert alarms[0].scheduled_time == second + 5 * MINUTE
        assert reminders.get()["bm1"].minutes == 5

    def test_set_reminder_rejects_non_positive_minutes(self, reminders, scheduler):
        with pytest.raises(ValueError):
            set_reminder(reminders, scheduler, "bm1", "https://a.test", "A", 0, T0)
        assert scheduler.all() == []
        assert reminders.get() == {}

    def test_clear_reminder(self, reminders, scheduler):
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "A", 10, T0)
        assert clear_reminder(reminders, scheduler, "bm1") is True
        assert reminders.get() == {}
        assert scheduler.all() == []

    def test_clear_missing_reminder(self, reminders, scheduler):
        assert clear_reminder(reminders, scheduler, "bm1") is False

    def test_trigger_delivers_all_effects(self, reminders, scheduler, sinks, config):
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "Article", 10, T0)

        entry = trigger_reminder(reminders, "bm1", sinks, config, T0 + 10 * MINUTE)

        assert entry.url == "https://a.test"
        [note] = sinks.notifier.calls
        assert note["title"] == "Bookmark Reminder"
        assert note["message"] == "Time to review: Article"
        assert note["icon"] == "icons/bookmarked.svg"
        assert note["id"].startswith(f"reminder_{T0 + 10 * MINUTE}_")
        assert sinks.tone.calls == [(800, 500, 0.3)]
        assert sinks.opener.opened == ["https://a.test"]
        assert reminders.get() == {}

    def test_trigger_absent_reminder_is_noop(self, reminders, sinks, config):
        """An alarm whose reminder is gone has no side effects."""
        assert trigger_reminder(reminders, "bm1", sinks, config, T0) is None
        assert sinks.notifier.calls == []
        assert sinks.tone.calls == []
        assert sinks.opener.opened == []

    def test_failing_effect_does_not_block_others(self, reminders, scheduler, sinks, config):
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "Article", 1, T0)
        sinks.tone.play = MagicMock(side_effect=RuntimeError("no audio device"))

        entry = trigger_reminder(reminders, "bm1", sinks, config, T0 + MINUTE)

        assert entry is not None
        assert len(sinks.notifier.calls) == 1
        assert sinks.opener.opened == ["https://a.test"]
        assert reminders.get() == {}

    def test_reminder_replaced_during_trigger_survives(self, reminders, scheduler, sinks, config):
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "Article", 1, T0)

        def replace(url):
            set_reminder(reminders, scheduler, "bm1", url, "Article", 30, T0 + MINUTE)

        sinks.opener.open = MagicMock(side_effect=replace)

        trigger_reminder(reminders, "bm1", sinks, config, T0 + MINUTE)

        assert reminders.get()["bm1"].minutes == 30
        assert scheduler.get("reminder_bm1") is not None

    def test_replacement_in_same_millisecond_survives(self, reminders, scheduler, sinks, config):
        """Same setTime, different reminder: the newer one is kept."""
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "Article", 1, T0)

        def replace(url):
            set_reminder(reminders, scheduler, "bm1", url, "Article", 5, T0)

        sinks.opener.open = MagicMock(side_effect=replace)

        trigger_reminder(reminders, "bm1", sinks, config, T0 + MINUTE)

        kept = reminders.get()["bm1"]
        assert kept.set_time == T0
        assert kept.minutes == 5
        assert scheduler.get("reminder_bm1").scheduled_time == T0 + 5 * MINUTE

    def test_trigger_before_due_is_ignored_and_rearmed(self, reminders, scheduler, sinks, config):
        """A stale alarm firing early does not deliver the current reminder."""
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "Article", 30, T0)
        scheduler.clear("reminder_bm1")

        assert trigger_reminder(reminders, "bm1", sinks, config, T0 + MINUTE, scheduler) is None

        assert sinks.notifier.calls == []
        assert sinks.tone.calls == []
        assert sinks.opener.opened == []
        assert reminders.get()["bm1"].minutes == 30
        assert scheduler.get("reminder_bm1").scheduled_time == T0 + 30 * MINUTE

    def test_trigger_before_due_without_scheduler(self, reminders, scheduler, sinks, config):
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "Article", 30, T0)

        assert trigger_reminder(reminders, "bm1", sinks, config, T0 + 30 * MINUTE - 1) is None
        assert "bm1" in reminders.get()
        assert sinks.opener.opened == []

    def test_rearm_reminders(self, reminders, scheduler):
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "A", 5, T0)
        set_reminder(reminders, scheduler, "bm2", "https://b.test", "B", 60, T0)
        scheduler.clear("reminder_bm1")
        scheduler.schedule_once("reminder_bm2", T0 + 2 * DAY)

        assert rearm_reminders(reminders, scheduler) == ["bm1"]

        assert scheduler.get("reminder_bm1").scheduled_time == T0 + 5 * MINUTE
        assert scheduler.get("reminder_bm2").scheduled_time == T0 + 2 * DAY

    def test_rearm_with_nothing_stored(self, reminders, scheduler):
        assert rearm_reminders(reminders, scheduler) == []
        assert scheduler.all() == []

    def test_other_reminders_untouched(self, reminders, scheduler, sinks, config):
        set_reminder(reminders, scheduler, "bm1", "https://a.test", "A", 1, T0)
        set_reminder(reminders, scheduler, "bm2", "https://b.test", "B", 60, T0)

        trigger_reminder(reminders, "bm1", sinks, config, T0 + MINUTE)

        assert list(reminders.get()) == ["bm2"]

    def test_reminder_entry_round_trip_through_store(self, reminders):
        entry = ReminderEntry.create("https://a.test", "A", 3, T0)
        reminders.put({"bm1": entry})
        assert reminders.get()["bm1"].reminder_time == T0 + 3 * MINUTE
