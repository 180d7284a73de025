"""
Small helpers shared across ToggleMark modules.
"""
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from togglemark.constants import RESTRICTED_URL_PREFIXES


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def generate_node_id() -> str:
    """
    Generate a host-style bookmark id.

    Returns:
        12-character string, unique per call
    """
    return uuid.uuid4().hex[:12]


def is_restricted_url(url: Optional[str]) -> bool:
    """
    Check whether a page is one the toolbar button does not track.

    Args:
        url: Page address (may be None for blank tabs)

    Returns:
        True for missing URLs and internal browser pages
    """
    if not url:
        return True
    return url.startswith(RESTRICTED_URL_PREFIXES)


def format_timestamp(ms: Optional[int]) -> str:
    """Format a millisecond timestamp for display (local time)."""
    if ms is None:
        return "N/A"
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone()
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def format_duration(ms: int) -> str:
    """
    Format a duration as a short human string.

    Examples:
        >>> format_duration(90 * 60 * 1000)
        '1h 30m'
        >>> format_duration(-5000)
        'overdue'
    """
    if ms <= 0:
        return "overdue"
    minutes = ms // 60000
    days, minutes = divmod(minutes, 24 * 60)
    hours, minutes = divmod(minutes, 60)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m"
    return "<1m"
