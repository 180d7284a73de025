"""
ToggleMark extension core.

Wires the host services (bookmarks, storage, alarms, sinks) to the event
handlers of the extension. Every handler reads state from storage when it
runs and never keeps it in memory between events; storage is authoritative.
Handlers catch and log their own failures so the next event always runs
normally.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from togglemark.alarms import AlarmScheduler, ReminderAlarm, SweepAlarm, parse_alarm_name
from togglemark.bookmarks import BookmarkInfo, BookmarkStore
from togglemark.config import get_config
from togglemark.constants import QUICK_SAVES_FOLDER_KEY, SWEEP_ALARM_NAME
from togglemark.messages import (
    MessageValidationError, SetReminderRequest, error, ok
)
from togglemark.reconcile import (
    SweepResult, clear_reminder, forget_expiring, prune_orphans, rearm_reminders,
    set_reminder, sweep_expired, trigger_reminder
)
from togglemark.sinks import Sinks
from togglemark.storage import KeyValueStorage, expiring_store, reminder_store
from togglemark.toggle import (
    ToggleAction, ToggleResult, ToolbarState, bookmark_state, ensure_bookmarked,
    setup_quick_saves_folder, toggle_bookmark
)
from togglemark.utils import is_restricted_url, now_ms

logger = logging.getLogger(__name__)


@dataclass
class Tab:
    """A browser tab as seen by the toolbar button."""
    id: int
    url: Optional[str]
    title: Optional[str] = None


class Extension:
    """
    The extension's background logic.

    Usage:
        ext = Extension(get_db())
        ext.on_installed()
        ext.on_toolbar_clicked(Tab(1, "https://example.com", "Example"))
        ext.scheduler.poll()
    """

    def __init__(self, db, config=None, clock: Callable[[], int] = now_ms,
                 sinks: Optional[Sinks] = None):
        self.db = db
        self.config = config or get_config()
        self.clock = clock
        self.sinks = sinks or Sinks.from_config(self.config)

        self.bookmarks = BookmarkStore(db, clock)
        self.storage = KeyValueStorage(db)
        self.scheduler = AlarmScheduler(db, clock)
        self.expiring = expiring_store(self.storage)
        self.reminders = reminder_store(self.storage)

        self.active_tab: Optional[Tab] = None

        self.scheduler.on_fire(self.on_alarm)
        self.bookmarks.on_created(self.on_bookmark_created)
        self.bookmarks.on_removed(self.on_bookmark_removed)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def on_installed(self) -> None:
        """Create the quick-saves folder and the daily sweep alarm."""
        setup_quick_saves_folder(self.bookmarks, self.storage, self.config)
        self.setup_sweep_alarm()

    def on_startup(self) -> None:
        """
        Bring persisted state back in line after a restart.

        Ensures the sweep is scheduled, drops expiry records of vanished
        bookmarks and recreates alarms of reminders whose delivery was cut
        short.
        """
        try:
            if self.scheduler.get(SWEEP_ALARM_NAME) is None:
                self.setup_sweep_alarm()
            prune_orphans(self.bookmarks, self.expiring)
            rearm_reminders(self.reminders, self.scheduler)
        except Exception as e:
            logger.error(f"Error during startup: {e}")

    def setup_sweep_alarm(self) -> None:
        try:
            self.scheduler.schedule_recurring(SWEEP_ALARM_NAME, self.config.sweep_period_minutes)
        except Exception as e:
            logger.error(f"Error setting up cleanup alarm: {e}")

    # ------------------------------------------------------------------
    # Toolbar and tabs
    # ------------------------------------------------------------------

    def update_ui(self, tab: Optional[Tab]) -> Optional[ToolbarState]:
        """Render the toolbar button for a tab from the current bookmark state."""
        if tab is None or is_restricted_url(tab.url):
            return None
        try:
            state = bookmark_state(self.bookmarks, tab.url)
            self.sinks.toolbar.render(tab.id, state)
            return state
        except Exception as e:
            logger.error(f"Error updating UI: {e}")
            return None

    def on_toolbar_clicked(self, tab: Tab) -> Optional[ToggleResult]:
        if not tab.url:
            return None
        self.active_tab = tab
        try:
            result = toggle_bookmark(
                self.bookmarks, self.storage, tab.url, tab.title, self.clock(), self.config
            )
            if result.action is ToggleAction.ADDED:
                self.db.emit_event(
                    "expiry_added", "expiry", entity_id=result.bookmark_ids[0], entity_url=tab.url
                )
        except Exception as e:
            logger.error(f"Error toggling bookmark: {e}")
            result = None
        self.update_ui(tab)
        return result

    def on_tab_activated(self, tab: Tab) -> None:
        self.active_tab = tab
        self.update_ui(tab)

    def on_tab_updated(self, tab: Tab, status: str) -> None:
        if self.active_tab is not None and self.active_tab.id == tab.id:
            self.active_tab = tab
        if status == "complete":
            self.update_ui(tab)

    # ------------------------------------------------------------------
    # Bookmark store events
    # ------------------------------------------------------------------

    def on_bookmark_created(self, bookmark_id: str, node: BookmarkInfo) -> None:
        self.update_ui(self.active_tab)

    def on_bookmark_removed(self, bookmark_id: str, node: BookmarkInfo) -> None:
        """A bookmark went away, by us or by hand: its expiry record goes too."""
        try:
            if forget_expiring(self.expiring, [bookmark_id]):
                logger.info(f"Dropped expiry record of removed bookmark {bookmark_id}")
                self.db.emit_event("expiry_retired", "expiry", entity_id=bookmark_id,
                                   entity_url=node.url, event_data={"reason": "bookmark_removed"})
        except Exception as e:
            logger.error(f"Error cleaning up expiry record for {bookmark_id}: {e}")
        self.update_ui(self.active_tab)

    # ------------------------------------------------------------------
    # Alarms
    # ------------------------------------------------------------------

    def on_alarm(self, name: str) -> None:
        target = parse_alarm_name(name)
        if isinstance(target, SweepAlarm):
            self.cleanup_expired_bookmarks()
        elif isinstance(target, ReminderAlarm):
            self.trigger_reminder(target.bookmark_id)
        else:
            logger.warning(f"Ignoring unknown alarm: {name}")

    def cleanup_expired_bookmarks(self) -> Optional[SweepResult]:
        try:
            result = sweep_expired(self.bookmarks, self.expiring, self.clock())
        except Exception as e:
            logger.error(f"Error during cleanup of expired bookmarks: {e}")
            return None
        if result.retired:
            self.db.emit_event("sweep_completed", "expiry", event_data=result.to_dict())
            logger.info(
                f"Sweep retired {len(result.retired)} expired bookmark(s), "
                f"{len(result.pending)} pending"
            )
        return result

    def trigger_reminder(self, bookmark_id: str) -> bool:
        try:
            entry = trigger_reminder(
                self.reminders, bookmark_id, self.sinks, self.config, self.clock(), self.scheduler
            )
        except Exception as e:
            logger.error(f"Error triggering reminder: {e}")
            return False
        if entry is None:
            return False
        self.db.emit_event("reminder_triggered", "reminder", entity_id=bookmark_id,
                           entity_url=entry.url, event_data={"title": entry.title})
        return True

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def on_message(self, message: Any) -> Dict[str, Any]:
        """Handle a message from the popup and build its response."""
        try:
            request = SetReminderRequest.from_message(message)
        except MessageValidationError as e:
            return error(str(e))

        try:
            bookmark_id = request.bookmark_id
            if not bookmark_id:
                matches = self.bookmarks.search(url=request.url)
                bookmark_id = matches[0].id if matches else None
            if not bookmark_id:
                return error("Could not find or create bookmark for this URL")

            set_reminder(
                self.reminders, self.scheduler, bookmark_id,
                request.url, request.title, request.minutes, self.clock()
            )
            self.db.emit_event("reminder_set", "reminder", entity_id=bookmark_id,
                               entity_url=request.url, event_data={"minutes": request.minutes})
            return ok(f"Reminder set for {request.minutes} minutes")
        except Exception as e:
            logger.error(f"Error setting reminder: {e}")
            return error(f"Error setting reminder: {e}")

    def request_reminder(self, tab: Tab, minutes: Any) -> Dict[str, Any]:
        """
        Popup flow: validate, bookmark the page if needed, then ask for a reminder.

        Returns:
            Response with the message shown to the user
        """
        try:
            request = SetReminderRequest.from_message({
                "action": "setReminder",
                "url": tab.url,
                "title": tab.title,
                "minutes": minutes,
            })
        except MessageValidationError as e:
            return error(str(e))

        try:
            node, created = ensure_bookmarked(self.bookmarks, self.storage, request.url, request.title)
        except Exception as e:
            logger.error(f"Error setting reminder: {e}")
            return error(f"Error setting reminder: {e}")

        request.bookmark_id = node.id
        response = self.on_message(request.to_message())
        if response["success"]:
            if created:
                response["message"] = "Page bookmarked and reminder set!"
            else:
                response["message"] = "Reminder set for bookmarked page!"
        return response

    def cancel_reminder(self, bookmark_id: str) -> bool:
        try:
            cleared = clear_reminder(self.reminders, self.scheduler, bookmark_id)
        except Exception as e:
            logger.error(f"Error clearing reminder: {e}")
            return False
        if cleared:
            self.db.emit_event("reminder_cleared", "reminder", entity_id=bookmark_id)
        return cleared

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        now = self.clock()
        expiring = self.expiring.get()
        reminders = self.reminders.get()
        return {
            "now": now,
            "quick_saves_folder_id": self.storage.get([QUICK_SAVES_FOLDER_KEY]).get(QUICK_SAVES_FOLDER_KEY),
            "expiring": len(expiring),
            "expired_pending_sweep": sum(1 for e in expiring.values() if e.is_matured(now)),
            "reminders": len(reminders),
            "alarms": len(self.scheduler.all()),
        }
