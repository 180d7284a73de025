import os
import shutil
import tempfile
import threading

import pytest

from togglemark.config import TogglemarkConfig
from togglemark.constants import MS_PER_DAY, MS_PER_MINUTE
from togglemark.sinks import Notifier, Sinks, TonePlayer, Toolbar, UrlOpener


# 2024-01-01T00:00:00Z
T0 = 1_704_067_200_000
DAY = MS_PER_DAY
MINUTE = MS_PER_MINUTE


class FakeClock:
    """Controllable millisecond clock."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now

    def set(self, ms):
        self.now = ms
        return self.now


class RecordingNotifier(Notifier):
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def notify(self, notification_id, title, message, icon):
        with self._lock:
            self.calls.append({"id": notification_id, "title": title, "message": message, "icon": icon})


class RecordingTonePlayer(TonePlayer):
    def __init__(self):
        self.calls = []

    def play(self, frequency, duration_ms, volume):
        self.calls.append((frequency, duration_ms, volume))


class RecordingUrlOpener(UrlOpener):
    def __init__(self):
        self.opened = []

    def open(self, url):
        self.opened.append(url)


class RecordingToolbar(Toolbar):
    def __init__(self):
        self.renders = []

    def render(self, tab_id, state):
        self.renders.append((tab_id, state))

    @property
    def last_state(self):
        return self.renders[-1][1] if self.renders else None


@pytest.fixture
def clock():
    """A FakeClock starting at T0."""
    return FakeClock()


@pytest.fixture
def config():
    """Default configuration, independent of files and environment."""
    return TogglemarkConfig()


@pytest.fixture
def sinks():
    """Sinks that record what they were asked to do."""
    return Sinks(
        notifier=RecordingNotifier(),
        tone=RecordingTonePlayer(),
        opener=RecordingUrlOpener(),
        toolbar=RecordingToolbar(),
    )


@pytest.fixture
def temp_db_path():
    """Path of a temporary database file."""
    temp_dir = tempfile.mkdtemp(prefix="togglemark_test_db_")
    yield os.path.join(temp_dir, "test.db")
    shutil.rmtree(temp_dir)


@pytest.fixture
def db(temp_db_path):
    """Fresh Database on a temporary file."""
    from togglemark.db import Database
    return Database(temp_db_path)


@pytest.fixture
def bookmarks(db, clock):
    from togglemark.bookmarks import BookmarkStore
    return BookmarkStore(db, clock)


@pytest.fixture
def storage(db):
    from togglemark.storage import KeyValueStorage
    return KeyValueStorage(db)


@pytest.fixture
def scheduler(db, clock):
    from togglemark.alarms import AlarmScheduler
    return AlarmScheduler(db, clock)


@pytest.fixture
def extension(db, config, clock, sinks):
    """Extension wired to a temp database, fake clock and recording sinks."""
    from togglemark.extension import Extension
    return Extension(db, config=config, clock=clock, sinks=sinks)


@pytest.fixture
def installed(extension):
    """Extension after the install bootstrap ran."""
    extension.on_installed()
    return extension


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Clean ToggleMark environment without touching real config.

    Removes TOGGLEMARK_ environment variables, points HOME at a temp
    directory and resets the global config.
    """
    import togglemark.config
    import togglemark.db

    for key in list(os.environ.keys()):
        if key.startswith("TOGGLEMARK_"):
            monkeypatch.delenv(key, raising=False)

    mock_home = tmp_path / "home"
    mock_home.mkdir()
    monkeypatch.setenv("HOME", str(mock_home))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(togglemark.config, "_config", None)
    monkeypatch.setattr(togglemark.db, "_db", None)

    return tmp_path
