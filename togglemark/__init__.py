"""
ToggleMark - one-click quick saves that expire, and bookmark reminders.

A toolbar toggle bookmarks the current page into a "Quick Saves" folder;
those quick saves delete themselves after a retention window (7 days by
default). Any page can also get a one-shot reminder that reopens it and
notifies the user at a chosen time.

Design Principles:
- Storage is authoritative; nothing is cached between events
- Entry state (pending, matured, retired) is derived from timestamps
- Every operation is idempotent at "remove if present" granularity
- Host services (bookmarks, storage, alarms) live in one SQLite file

Example Usage:
    >>> from togglemark import Extension, Tab, get_db
    >>> ext = Extension(get_db())
    >>> ext.on_installed()
    >>> ext.on_toolbar_clicked(Tab(1, "https://example.com", "Example"))
    >>> ext.scheduler.poll()
"""

__version__ = "1.0.0"
__author__ = "ToggleMark Contributors"

# Core database API
from togglemark.db import Database, get_db

# Configuration
from togglemark.config import TogglemarkConfig, get_config, init_config

# Host services
from togglemark.bookmarks import BookmarkStore, BookmarkInfo, BookmarkError
from togglemark.storage import (
    KeyValueStorage,
    TimeKeyedStore,
    ExpiringEntry,
    ReminderEntry,
    expiring_store,
    reminder_store,
)
from togglemark.alarms import AlarmScheduler, parse_alarm_name

# Extension core
from togglemark.extension import Extension, Tab
from togglemark.runtime import Runtime

__all__ = [
    # Database
    "Database",
    "get_db",
    # Config
    "TogglemarkConfig",
    "get_config",
    "init_config",
    # Host services
    "BookmarkStore",
    "BookmarkInfo",
    "BookmarkError",
    "KeyValueStorage",
    "TimeKeyedStore",
    "ExpiringEntry",
    "ReminderEntry",
    "expiring_store",
    "reminder_store",
    "AlarmScheduler",
    "parse_alarm_name",
    # Core
    "Extension",
    "Tab",
    "Runtime",
]
