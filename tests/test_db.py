"""Tests for togglemark/db.py."""
from togglemark.db import Database, get_db
from togglemark.models import BookmarkNode


class TestDatabase:
    """Test engine setup and the audit trail."""

    def test_roots_are_seeded(self, db):
        with db.session() as session:
            roots = {n.id: n.title for n in session.query(BookmarkNode).filter(BookmarkNode.parent_id.is_(None))}
        assert roots == {
            "menu________": "Bookmarks Menu",
            "toolbar_____": "Bookmarks Toolbar",
            "unfiled_____": "Other Bookmarks",
        }

    def test_reopen_does_not_duplicate_roots(self, temp_db_path):
        Database(temp_db_path)
        db = Database(temp_db_path)
        with db.session() as session:
            assert session.query(BookmarkNode).count() == 3

    def test_memory_database(self, clean_env):
        db = Database(url="sqlite:///:memory:")
        db.emit_event("reminder_set", "reminder", entity_id="bm1")
        assert [e.entity_id for e in db.events()] == ["bm1"]

    def test_events_newest_first_and_filtered(self, db):
        db.emit_event("expiry_added", "expiry", entity_id="a")
        db.emit_event("reminder_set", "reminder", entity_id="b", event_data={"minutes": 5})
        db.emit_event("expiry_added", "expiry", entity_id="c")

        assert [e.entity_id for e in db.events()] == ["c", "b", "a"]
        assert [e.entity_id for e in db.events(event_type="expiry_added")] == ["c", "a"]
        assert len(db.events(limit=1)) == 1
        assert db.events(event_type="reminder_set")[0].event_data == {"minutes": 5}

    def test_session_rolls_back_on_error(self, db):
        try:
            with db.session() as session:
                session.add(BookmarkNode(id="x", parent_id="unfiled_____", title="X", type="folder"))
                raise RuntimeError("abort")
        except RuntimeError:
            pass
        with db.session() as session:
            assert session.get(BookmarkNode, "x") is None

    def test_info(self, db, temp_db_path):
        info = db.info()
        assert info["path"] == temp_db_path
        assert set(info["tables"]) >= {"bookmarks", "storage", "alarms", "events"}


class TestGetDb:
    def test_get_db_is_cached(self, clean_env):
        first = get_db()
        assert get_db() is first
        assert get_db(reload=True) is not first

    def test_get_db_with_path(self, clean_env):
        db = get_db(str(clean_env / "other.db"))
        assert db.path == clean_env / "other.db"
