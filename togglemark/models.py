"""
SQLAlchemy models for the ToggleMark host state.

Defines the tables that stand in for the host services of a browser:
the bookmark tree, the key-value storage area, the alarm registry and an
audit trail of everything the extension did.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from sqlalchemy import (
    Integer, String, DateTime, ForeignKey, Index, JSON, BigInteger, Float
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class BookmarkNode(Base):
    """
    A node of the host bookmark tree.

    Attributes:
        id: Host-assigned string id
        parent_id: Containing folder (None only for roots)
        title: Display title
        url: Target address (None for folders)
        type: 'bookmark' or 'folder'
        position: Order within the parent folder
        date_added: Creation time in ms since epoch
    """
    __tablename__ = 'bookmarks'

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(32),
        ForeignKey('bookmarks.id', ondelete='CASCADE'),
        nullable=True,
        index=True
    )
    title: Mapped[str] = mapped_column(String(512), nullable=False, default='')
    url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default='bookmark')
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    date_added: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        Index('ix_bookmarks_title', 'title'),
    )

    @property
    def is_folder(self) -> bool:
        return self.type == 'folder'

    def __repr__(self):
        return f"<BookmarkNode(id={self.id!r}, type={self.type!r}, title='{self.title[:50]}')>"


class StorageItem(Base):
    """
    One key of the extension's local key-value storage.

    Values are arbitrary JSON documents; there is no schema per key.
    """
    __tablename__ = 'storage'

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return f"<StorageItem(key={self.key!r})>"


class Alarm(Base):
    """
    A named wake-up registered with the alarm service.

    One-shot alarms have no period; recurring alarms are moved forward by
    period_minutes each time they fire.
    """
    __tablename__ = 'alarms'

    name: Mapped[str] = mapped_column(String(256), primary_key=True)
    scheduled_time: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    period_minutes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    @property
    def is_recurring(self) -> bool:
        return self.period_minutes is not None

    def __repr__(self):
        return f"<Alarm(name={self.name!r}, scheduled_time={self.scheduled_time})>"


class Event(Base):
    """
    Event log for tracking what the extension did.

    Event types:
        bookmark_created, bookmark_removed
        expiry_added, expiry_retired, sweep_completed
        reminder_set, reminder_cleared, reminder_triggered
    """
    __tablename__ = 'events'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)  # bookmark, expiry, reminder

    # Entity reference (the bookmark may no longer exist)
    entity_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    entity_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True
    )

    event_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index('ix_events_entity', 'entity_type', 'entity_id'),
        Index('ix_events_timestamp_desc', timestamp.desc()),
    )

    def __repr__(self):
        return f"<Event(id={self.id}, type='{self.event_type}', entity={self.entity_type}:{self.entity_id})>"
