"""Repository for install metadata (app_meta table)."""

from typing import Optional
from sqlalchemy.orm import Session

from diary_engine.models.diary import AppMeta

APP_VERSION_KEY = "app_version"


class AppMetaRepository:
    """Repository for key/value install metadata."""
    
    def __init__(self, db: Session):
        """Initialize repository with database session."""
        self.db = db
    
    def get(self, key: str) -> Optional[str]:
        """Get a value, or None if the key was never written."""
        row = self.db.query(AppMeta).filter(AppMeta.key == key).first()
        return row.value if row else None
    
    def set(self, key: str, value: str) -> None:
        """Insert or overwrite a value."""
        row = self.db.query(AppMeta).filter(AppMeta.key == key).first()
        if row is None:
            self.db.add(AppMeta(key=key, value=value))
        else:
            row.value = value
        self.db.commit()
    
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""
        deleted = self.db.query(AppMeta).filter(AppMeta.key == key).delete()
        self.db.commit()
        return deleted > 0
