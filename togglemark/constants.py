"""
Constants for ToggleMark.

These constants are used by various modules for sensible defaults.
Most time-related ones are also available via the config system.
"""

# Time units (in milliseconds)
MS_PER_MINUTE = 60 * 1000
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE

# Expiration
DEFAULT_RETENTION_DAYS = 7
DEFAULT_SWEEP_PERIOD_MINUTES = 1440  # once per day

# Persisted storage keys
QUICK_SAVES_FOLDER_KEY = "quickSavesFolderId"
EXPIRING_BOOKMARKS_KEY = "expiringBookmarks"
REMINDERS_KEY = "reminders"

# Alarm names
SWEEP_ALARM_NAME = "cleanup_expired_bookmarks"
REMINDER_ALARM_PREFIX = "reminder_"

# Folders
QUICK_SAVES_FOLDER_NAME = "⚡ Quick Saves"
TOOLBAR_FOLDER_NAME = "Bookmarks Toolbar"

# Host bookmark roots (id, title)
ROOT_MENU = ("menu________", "Bookmarks Menu")
ROOT_TOOLBAR = ("toolbar_____", TOOLBAR_FOLDER_NAME)
ROOT_UNFILED = ("unfiled_____", "Other Bookmarks")
BOOKMARK_ROOTS = (ROOT_MENU, ROOT_TOOLBAR, ROOT_UNFILED)
DEFAULT_PARENT_ID = ROOT_UNFILED[0]

# Pages the toolbar button ignores
RESTRICTED_URL_PREFIXES = ("about:", "chrome:")

# Reminder alert
NOTIFICATION_TITLE = "Bookmark Reminder"
NOTIFICATION_ICON = "icons/bookmarked.svg"
TONE_FREQUENCY = 800
TONE_DURATION_MS = 500
TONE_VOLUME = 0.3
