"""
Inbound messages from the reminder popup.

The popup sends

    {"action": "setReminder", "bookmarkId": "...", "url": "...",
     "title": "...", "minutes": 10}

and gets back {"success": bool, "message": str}. Validation happens
before any side effect.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

SET_REMINDER = "setReminder"


class MessageValidationError(Exception):
    """Raised for malformed or unsupported messages."""
    pass


def ok(message: str) -> Dict[str, Any]:
    return {"success": True, "message": message}


def error(message: str) -> Dict[str, Any]:
    return {"success": False, "message": message}


@dataclass
class SetReminderRequest:
    url: str
    title: str
    minutes: int
    bookmark_id: Optional[str] = None

    @classmethod
    def from_message(cls, message: Any) -> "SetReminderRequest":
        """
        Validate a setReminder message.

        Raises:
            MessageValidationError: unknown action, missing url, or a
                reminder time that is not a positive whole number of minutes
        """
        if not isinstance(message, dict):
            raise MessageValidationError("Message must be an object")
        if message.get("action") != SET_REMINDER:
            raise MessageValidationError(f"Unsupported action: {message.get('action')!r}")

        url = message.get("url")
        if not url or not isinstance(url, str):
            raise MessageValidationError("Cannot set reminder for this page.")

        minutes = parse_minutes(message.get("minutes"))

        bookmark_id = message.get("bookmarkId")
        return cls(
            url=url,
            title=message.get("title") or url,
            minutes=minutes,
            bookmark_id=str(bookmark_id) if bookmark_id else None,
        )

    def to_message(self) -> Dict[str, Any]:
        return {
            "action": SET_REMINDER,
            "bookmarkId": self.bookmark_id,
            "url": self.url,
            "title": self.title,
            "minutes": self.minutes,
        }


def parse_minutes(value: Any) -> int:
    """
    Parse a reminder duration.

    Accepts ints and integer strings ("10"); rejects bools, fractions,
    zero and negative values.
    """
    if isinstance(value, bool):
        raise MessageValidationError("Please select a valid reminder time.")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    try:
        minutes = int(value) if isinstance(value, (int, str)) else None
    except ValueError:
        minutes = None
    if minutes is None or minutes <= 0:
        raise MessageValidationError("Please select a valid reminder time.")
    return minutes
