"""
Database interface for ToggleMark.

Provides the SQLAlchemy engine and sessions that back the host services
(bookmarks, storage, alarms) plus the audit trail.
"""
import logging
from pathlib import Path
from typing import Optional, List, Generator, Any, Dict
from contextlib import contextmanager

from sqlalchemy import create_engine, select, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from togglemark import constants
from togglemark.models import Base, BookmarkNode, Event
from togglemark.config import get_config

logger = logging.getLogger(__name__)


class Database:
    """
    Minimal database interface for ToggleMark.

    Owns the engine and session factory; the host services build on top of
    session() and never share sessions across calls.
    """

    def __init__(self, path: Optional[str] = None, url: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            path: Database file path (for SQLite). Uses config default if not provided.
            url: Full database URL (overrides path).

        Examples:
            Database()  # Uses config default
            Database(path="togglemark.db")
            Database(url="sqlite:///:memory:")
        """
        config = get_config()

        if url:
            self.url = url
            self.path = None
        elif path:
            self.path = Path(path)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.url = f"sqlite:///{self.path}"
        else:
            self.url = config.get_database_url()
            if config.is_sqlite() and not config.database_url:
                self.path = config.get_database_path()
                self.path.parent.mkdir(parents=True, exist_ok=True)
            else:
                self.path = None

        if self.url.startswith("sqlite:"):
            in_memory = ":memory:" in self.url or self.url == "sqlite://"
            self.engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False},
                # A memory database only lives as long as its one connection
                poolclass=StaticPool if in_memory else NullPool,
                echo=config.database_echo
            )
            event.listen(self.engine, "connect", self._configure_sqlite)
        else:
            self.engine = create_engine(
                self.url,
                pool_pre_ping=True,
                echo=config.database_echo
            )

        self.Session = sessionmaker(bind=self.engine, autoflush=False)

        Base.metadata.create_all(self.engine)
        self._seed_roots()

    @staticmethod
    def _configure_sqlite(dbapi_conn, connection_record):
        """Configure SQLite for durability and concurrent readers."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute("PRAGMA journal_mode = WAL")
        cursor.execute("PRAGMA synchronous = NORMAL")
        cursor.close()

    def _seed_roots(self):
        """Create the host bookmark roots if this is a fresh database."""
        with self.session() as session:
            for position, (root_id, title) in enumerate(constants.BOOKMARK_ROOTS):
                if session.get(BookmarkNode, root_id) is None:
                    session.add(BookmarkNode(
                        id=root_id,
                        parent_id=None,
                        title=title,
                        type="folder",
                        position=position,
                    ))

    @contextmanager
    def session(self, expire_on_commit: bool = True) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.

        Args:
            expire_on_commit: If False, objects won't expire after commit

        Yields:
            SQLAlchemy session with automatic commit/rollback
        """
        session = self.Session()
        session.expire_on_commit = expire_on_commit
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def emit_event(
        self,
        event_type: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        entity_url: Optional[str] = None,
        event_data: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Emit an event for the audit trail.

        Args:
            event_type: Type of event (bookmark_created, expiry_retired, etc.)
            entity_type: Entity type (bookmark, expiry, reminder)
            entity_id: Bookmark id the event is about
            entity_url: URL (preserved even after deletion)
            event_data: Additional event-specific data
        """
        with self.session() as session:
            session.add(Event(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_url=entity_url,
                event_data=event_data
            ))

    def events(self, event_type: Optional[str] = None, limit: Optional[int] = None) -> List[Event]:
        """
        Get audit events, newest first.

        Args:
            event_type: Only return events of this type
            limit: Maximum number of results
        """
        with self.session(expire_on_commit=False) as session:
            query = select(Event).order_by(Event.id.desc())
            if event_type:
                query = query.where(Event.event_type == event_type)
            if limit:
                query = query.limit(limit)
            return list(session.execute(query).scalars())

    def info(self) -> Dict[str, Any]:
        """Get database connection details."""
        info = {
            "url": self.url,
            "engine": str(self.engine.url.drivername),
            "tables": list(Base.metadata.tables.keys()),
        }
        if self.path:
            info["path"] = str(self.path)
            if self.path.exists():
                info["size_bytes"] = self.path.stat().st_size
        return info


# Global database instance
_db: Optional[Database] = None


def get_db(path: Optional[str] = None, reload: bool = False) -> Database:
    """
    Get the global database instance.

    Args:
        path: Database file path
        reload: Force new connection

    Returns:
        Database instance
    """
    global _db
    if _db is None or reload or path:
        _db = Database(path)
    return _db
