"""
Output sinks used by the extension core.

Notification, alert tone, navigation and toolbar rendering are
fire-and-forget: the core never consumes a return value. Each sink is an
ABC with a console-backed implementation; tests swap in recording ones.
"""
import logging
import random
import string
import webbrowser
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel

if TYPE_CHECKING:
    from togglemark.toggle import ToolbarState

logger = logging.getLogger(__name__)

console = Console()


def make_notification_id(now: int) -> str:
    """Unique-enough id for a reminder notification."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"reminder_{now}_{suffix}"


class Notifier(ABC):
    @abstractmethod
    def notify(self, notification_id: str, title: str, message: str, icon: str) -> None:
        """Show a notification to the user."""
        pass


class TonePlayer(ABC):
    @abstractmethod
    def play(self, frequency: int, duration_ms: int, volume: float) -> None:
        """Play a short audible alert."""
        pass


class UrlOpener(ABC):
    @abstractmethod
    def open(self, url: str) -> None:
        """Open url in a new view."""
        pass


class Toolbar(ABC):
    @abstractmethod
    def render(self, tab_id: int, state: "ToolbarState") -> None:
        """Set the toolbar button icon and title for a tab."""
        pass


class ConsoleNotifier(Notifier):
    """Prints notifications as rich panels."""

    def __init__(self, output: Console = None):
        self.console = output or console

    def notify(self, notification_id, title, message, icon):
        self.console.print(Panel(message, title=f"🔔 {title}", border_style="yellow"))
        logger.debug(f"Notification {notification_id} shown")


class BellTonePlayer(TonePlayer):
    """
    Rings the terminal bell.

    A terminal cannot honour frequency or volume; they are logged so the
    alert parameters stay visible.
    """

    def __init__(self, output: Console = None):
        self.console = output or console

    def play(self, frequency, duration_ms, volume):
        logger.debug(f"Alert tone {frequency}Hz for {duration_ms}ms at volume {volume}")
        self.console.bell()


class BrowserUrlOpener(UrlOpener):
    """Opens pages in a new tab of the system browser."""

    def open(self, url):
        if not webbrowser.open_new_tab(url):
            logger.warning(f"No browser available to open {url}")


class ConsoleToolbar(Toolbar):
    """Keeps the last rendered state per tab and logs changes."""

    def __init__(self):
        self.states = {}

    def render(self, tab_id, state):
        if self.states.get(tab_id) is not state:
            logger.info(f"Tab {tab_id}: {state.title} ({state.icon})")
        self.states[tab_id] = state


class NullUrlOpener(UrlOpener):
    """Used when opening pages is disabled in the config."""

    def open(self, url):
        logger.info(f"Not opening {url} (open_urls is disabled)")


@dataclass
class Sinks:
    """The set of output collaborators handed to the extension."""
    notifier: Notifier = field(default_factory=ConsoleNotifier)
    tone: TonePlayer = field(default_factory=BellTonePlayer)
    opener: UrlOpener = field(default_factory=BrowserUrlOpener)
    toolbar: Toolbar = field(default_factory=ConsoleToolbar)

    @classmethod
    def from_config(cls, config) -> "Sinks":
        opener = BrowserUrlOpener() if config.open_urls else NullUrlOpener()
        return cls(opener=opener)
