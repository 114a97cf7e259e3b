"""Test data helpers."""

from pathlib import Path
from typing import Optional

from diary_engine.db.database import DatabaseHandle
from diary_engine.models.diary import Child, DiaryEntry, DiaryPicture


def write_photo(path: Path, data: bytes = b"\xff\xd8\xff\xe0fake-jpeg") -> Path:
    """Write a fake photo file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def add_child(database: DatabaseHandle, photo_url: Optional[str], first_name: str = "Mia") -> int:
    with database.session_scope() as db:
        child = Child(first_name=first_name, last_name="Tester", birth_date="2021-04-01", photo_url=photo_url)
        db.add(child)
        db.commit()
        return child.id


def add_picture(database: DatabaseHandle, image_uri: str, entry_id: Optional[int] = None) -> int:
    """Add a diary picture, creating its entry if needed. Returns the picture id."""
    with database.session_scope() as db:
        entry = db.get(DiaryEntry, entry_id) if entry_id is not None else None
        if entry is None:
            entry = DiaryEntry(id=entry_id, content="First steps today [IMG:1]")
            db.add(entry)
            db.flush()
        picture = DiaryPicture(diary_entry_id=entry.id, image_uri=image_uri, image_id="1")
        db.add(picture)
        db.commit()
        return picture.id


def picture_uri(database: DatabaseHandle, picture_id: int) -> str:
    with database.session_scope() as db:
        return db.get(DiaryPicture, picture_id).image_uri


def child_photo(database: DatabaseHandle, child_id: int) -> Optional[str]:
    with database.session_scope() as db:
        return db.get(Child, child_id).photo_url
