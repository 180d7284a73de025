"""
Host bookmark store.

A small bookmark tree with the primitives the extension core consumes:
search, create, remove and change notifications. Nodes are handed out as
BookmarkInfo snapshots so no caller ever holds a live session.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy import func, or_, select

from togglemark.constants import BOOKMARK_ROOTS, DEFAULT_PARENT_ID
from togglemark.models import BookmarkNode
from togglemark.utils import generate_node_id, now_ms

logger = logging.getLogger(__name__)

ROOT_IDS = frozenset(root_id for root_id, _ in BOOKMARK_ROOTS)

BookmarkListener = Callable[[str, "BookmarkInfo"], None]


class BookmarkError(Exception):
    """Raised when the bookmark store rejects an operation."""
    pass


@dataclass(frozen=True)
class BookmarkInfo:
    """Detached snapshot of a bookmark tree node."""
    id: str
    title: str
    url: Optional[str]
    type: str
    parent_id: Optional[str]
    date_added: int

    @property
    def is_folder(self) -> bool:
        return self.type == "folder"

    @classmethod
    def from_node(cls, node: BookmarkNode) -> "BookmarkInfo":
        return cls(
            id=node.id,
            title=node.title,
            url=node.url,
            type=node.type,
            parent_id=node.parent_id,
            date_added=node.date_added,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "type": self.type,
            "parentId": self.parent_id,
            "dateAdded": self.date_added,
        }


class BookmarkStore:
    """
    Bookmark tree backed by the bookmarks table.

    Listeners registered with on_created/on_removed run after the change
    has been committed, in registration order.
    """

    def __init__(self, db, clock: Callable[[], int] = now_ms):
        self.db = db
        self.clock = clock
        self._created_listeners: List[BookmarkListener] = []
        self._removed_listeners: List[BookmarkListener] = []

    def on_created(self, listener: BookmarkListener) -> None:
        self._created_listeners.append(listener)

    def on_removed(self, listener: BookmarkListener) -> None:
        self._removed_listeners.append(listener)

    def search(self, url: Optional[str] = None, title: Optional[str] = None,
               query: Optional[str] = None) -> List[BookmarkInfo]:
        """
        Search the tree.

        Args:
            url: Exact URL match
            title: Exact title match
            query: Substring match against url or title

        Returns:
            Matching nodes, oldest first
        """
        with self.db.session() as session:
            stmt = select(BookmarkNode)
            if url is not None:
                stmt = stmt.where(BookmarkNode.url == url)
            if title is not None:
                stmt = stmt.where(BookmarkNode.title == title)
            if query:
                stmt = stmt.where(or_(
                    BookmarkNode.url.contains(query),
                    BookmarkNode.title.contains(query)
                ))
            stmt = stmt.order_by(BookmarkNode.date_added, BookmarkNode.position)
            return [BookmarkInfo.from_node(n) for n in session.execute(stmt).scalars()]

    def get(self, node_id: str) -> Optional[BookmarkInfo]:
        with self.db.session() as session:
            node = session.get(BookmarkNode, node_id)
            return BookmarkInfo.from_node(node) if node else None

    def children(self, parent_id: str) -> List[BookmarkInfo]:
        with self.db.session() as session:
            stmt = (
                select(BookmarkNode)
                .where(BookmarkNode.parent_id == parent_id)
                .order_by(BookmarkNode.position)
            )
            return [BookmarkInfo.from_node(n) for n in session.execute(stmt).scalars()]

    def all(self, include_folders: bool = False) -> List[BookmarkInfo]:
        with self.db.session() as session:
            stmt = select(BookmarkNode).order_by(BookmarkNode.date_added)
            if not include_folders:
                stmt = stmt.where(BookmarkNode.type == "bookmark")
            return [BookmarkInfo.from_node(n) for n in session.execute(stmt).scalars()]

    def create(self, title: str, url: Optional[str] = None, parent_id: Optional[str] = None,
               type: Optional[str] = None) -> BookmarkInfo:
        """
        Create a bookmark or folder.

        Args:
            title: Node title
            url: Target address; omitted for folders
            parent_id: Containing folder (host default when None)
            type: 'bookmark' or 'folder' (inferred from url when None)

        Returns:
            The created node

        Raises:
            BookmarkError: If the parent does not exist or is not a folder
        """
        node_type = type or ("bookmark" if url else "folder")
        if node_type not in ("bookmark", "folder"):
            raise BookmarkError(f"Unknown node type: {node_type}")
        if node_type == "bookmark" and not url:
            raise BookmarkError("A bookmark needs a url")

        parent_id = parent_id or DEFAULT_PARENT_ID

        with self.db.session(expire_on_commit=False) as session:
            parent = session.get(BookmarkNode, parent_id)
            if parent is None or not parent.is_folder:
                raise BookmarkError(f"Invalid parent folder: {parent_id}")

            position = session.execute(
                select(func.count()).select_from(BookmarkNode).where(BookmarkNode.parent_id == parent_id)
            ).scalar_one()

            node = BookmarkNode(
                id=generate_node_id(),
                parent_id=parent_id,
                title=title or "",
                url=url if node_type == "bookmark" else None,
                type=node_type,
                position=position,
                date_added=self.clock(),
            )
            session.add(node)
            session.flush()
            info = BookmarkInfo.from_node(node)

        self.db.emit_event(
            "bookmark_created", "bookmark",
            entity_id=info.id, entity_url=info.url,
            event_data={"title": info.title, "type": info.type, "parentId": info.parent_id}
        )
        self._notify(self._created_listeners, info)
        return info

    def remove(self, node_id: str) -> bool:
        """
        Remove a bookmark or an empty folder.

        Returns:
            True if removed, False if no such node existed

        Raises:
            BookmarkError: For roots and non-empty folders
        """
        if node_id in ROOT_IDS:
            raise BookmarkError(f"Cannot remove root folder: {node_id}")

        with self.db.session() as session:
            node = session.get(BookmarkNode, node_id)
            if node is None:
                return False
            if node.is_folder:
                has_children = session.execute(
                    select(BookmarkNode.id).where(BookmarkNode.parent_id == node_id).limit(1)
                ).first()
                if has_children:
                    raise BookmarkError(f"Folder is not empty: {node_id}")
            info = BookmarkInfo.from_node(node)
            session.delete(node)

        self.db.emit_event(
            "bookmark_removed", "bookmark",
            entity_id=info.id, entity_url=info.url,
            event_data={"title": info.title}
        )
        self._notify(self._removed_listeners, info)
        return True

    @staticmethod
    def _notify(listeners: List[BookmarkListener], info: BookmarkInfo) -> None:
        for listener in listeners:
            try:
                listener(info.id, info)
            except Exception as e:
                logger.error(f"Bookmark listener failed for {info.id}: {e}")
