"""
Bookmark toggle state machine.

A page is either BOOKMARKED (at least one bookmark has its URL) or
UNBOOKMARKED. Activating the toolbar button moves it to the other state:

    BOOKMARKED   -> remove every bookmark with that URL and their expiry records
    UNBOOKMARKED -> create one quick save and start its expiry clock

The state shown afterwards is re-queried from the bookmark store rather
than taken from the transition, so concurrent outside changes still end up
displayed correctly.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from togglemark.bookmarks import BookmarkInfo
from togglemark.constants import QUICK_SAVES_FOLDER_KEY
from togglemark.reconcile import add_expiring, forget_expiring
from togglemark.storage import expiring_store

logger = logging.getLogger(__name__)


class ToolbarState(Enum):
    """Toolbar button appearance for a page."""
    BOOKMARKED = ("icons/bookmarked.svg", "Remove Bookmark")
    UNBOOKMARKED = ("icons/unbookmarked.svg", "Add Bookmark")

    @property
    def icon(self) -> str:
        return self.value[0]

    @property
    def title(self) -> str:
        return self.value[1]


class ToggleAction(Enum):
    ADDED = "added"
    REMOVED = "removed"


@dataclass
class ToggleResult:
    """What a toggle did and the state the page is in afterwards."""
    action: ToggleAction
    state: ToolbarState
    bookmark_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    forgotten_ids: List[str] = field(default_factory=list)
    folder_id: Optional[str] = None

    def to_dict(self):
        return {
            "action": self.action.value,
            "state": self.state.name,
            "bookmark_ids": self.bookmark_ids,
            "failed_ids": self.failed_ids,
            "forgotten_ids": self.forgotten_ids,
            "folder_id": self.folder_id,
        }


def bookmark_state(bookmarks, url: str) -> ToolbarState:
    """Current toolbar state for a page."""
    if bookmarks.search(url=url):
        return ToolbarState.BOOKMARKED
    return ToolbarState.UNBOOKMARKED


def setup_quick_saves_folder(bookmarks, storage, config) -> Optional[str]:
    """
    Find or create the quick-saves folder and remember its id.

    The folder is looked up by its well-known name. If it is missing it is
    created under the bookmarks toolbar, or at the host default location if
    no toolbar folder can be found.

    Returns:
        Folder id, or None if the bookmark store failed
    """
    try:
        folders = [n for n in bookmarks.search(title=config.quick_saves_folder_name) if n.is_folder]
        folder = folders[0] if folders else None

        if folder is None:
            bars = [n for n in bookmarks.search(title=config.toolbar_folder_name) if n.is_folder]
            parent_id = bars[0].id if bars else None
            folder = bookmarks.create(
                title=config.quick_saves_folder_name,
                parent_id=parent_id,
                type="folder",
            )
            logger.info(f"Created quick saves folder {folder.id} under {folder.parent_id}")

        storage.set({QUICK_SAVES_FOLDER_KEY: folder.id})
        return folder.id
    except Exception as e:
        logger.error(f"Error setting up Quick Saves folder: {e}")
        return None


def resolve_quick_saves_folder(bookmarks, storage, config) -> Optional[str]:
    """
    Id of the quick-saves folder, bootstrapping it lazily.

    A remembered id is only trusted while the folder still exists.
    """
    folder_id = storage.get([QUICK_SAVES_FOLDER_KEY]).get(QUICK_SAVES_FOLDER_KEY)
    if folder_id:
        folder = bookmarks.get(folder_id)
        if folder is not None and folder.is_folder:
            return folder_id
        logger.info(f"Remembered quick saves folder {folder_id} is gone; recreating")
    return setup_quick_saves_folder(bookmarks, storage, config)


def toggle_bookmark(bookmarks, storage, url: str, title: Optional[str], now: int,
                    config) -> ToggleResult:
    """
    Flip the bookmark state of a page.

    Removing a page deletes every bookmark with that URL, duplicates
    included, and prunes the expiry records of all of them. A duplicate
    that fails to be removed keeps its record and is reported in failed_ids.

    Args:
        bookmarks: BookmarkStore
        storage: KeyValueStorage
        url: Page address
        title: Page title (used for a new bookmark)
        now: Current time in ms
        config: TogglemarkConfig (retention and folder names)

    Returns:
        ToggleResult with the re-queried state
    """
    existing = bookmarks.search(url=url)
    store = expiring_store(storage)

    if existing:
        # Snapshot first: removal listeners may drop the records themselves
        tracked = set(store.get())
        removed, failed = [], []
        for node in existing:
            try:
                bookmarks.remove(node.id)
                removed.append(node.id)
            except Exception as e:
                failed.append(node.id)
                logger.error(f"Error removing bookmark {node.id}: {e}")

        forget_expiring(store, removed)
        forgotten = [bid for bid in removed if bid in tracked]
        result = ToggleResult(
            action=ToggleAction.REMOVED,
            state=bookmark_state(bookmarks, url),
            bookmark_ids=removed,
            failed_ids=failed,
            forgotten_ids=forgotten,
        )
        logger.info(f"Removed {len(removed)} bookmark(s) for {url}")
        return result

    folder_id = resolve_quick_saves_folder(bookmarks, storage, config)
    node = bookmarks.create(title=title or url, url=url, parent_id=folder_id)
    add_expiring(store, node.id, url, now, config.retention_ms)

    logger.info(f"Quick saved {url} as {node.id}")
    return ToggleResult(
        action=ToggleAction.ADDED,
        state=bookmark_state(bookmarks, url),
        bookmark_ids=[node.id],
        folder_id=folder_id,
    )


def ensure_bookmarked(bookmarks, storage, url: str, title: Optional[str]) -> Tuple[BookmarkInfo, bool]:
    """
    Make sure a page has a bookmark before a reminder is set on it.

    The bookmark is created in the remembered quick-saves folder (host
    default if none) and does not get an expiry record.

    Returns:
        (bookmark, created)
    """
    existing = bookmarks.search(url=url)
    if existing:
        return existing[0], False

    folder_id = storage.get([QUICK_SAVES_FOLDER_KEY]).get(QUICK_SAVES_FOLDER_KEY)
    if folder_id and bookmarks.get(folder_id) is None:
        folder_id = None
    return bookmarks.create(title=title or url, url=url, parent_id=folder_id), True
