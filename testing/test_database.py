"""Tests for DatabaseHandle."""

from diary_engine.db.database import DatabaseHandle
from diary_engine.models.diary import Child

from helpers import add_child


def test_checkpoint_right_after_init_schema(database):
    database.checkpoint()
    
    assert database.database_path.read_bytes().startswith(b"SQLite format 3\x00")


def test_checkpoint_folds_committed_rows_into_main_file(database, tmp_path):
    add_child(database, "profiles/p.jpg")
    
    database.checkpoint()
    
    copy = tmp_path / "copy.db"
    copy.write_bytes(database.database_path.read_bytes())
    handle = DatabaseHandle(copy)
    try:
        with handle.session_scope() as db:
            assert [c.photo_url for c in db.query(Child).all()] == ["profiles/p.jpg"]
    finally:
        handle.dispose()


def test_checkpoint_without_database_file(tmp_path):
    handle = DatabaseHandle(tmp_path / "missing.db")
    handle.checkpoint()
    assert not (tmp_path / "missing.db").exists()
