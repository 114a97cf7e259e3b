"""Database models for child profiles, diary entries and their pictures."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Integer
from sqlalchemy.orm import relationship

from diary_engine.db.database import Base


class Child(Base):
    """
    A child profile.
    
    ``photo_url`` is the profile photo's MediaReference (bucket ``profiles``).
    """
    __tablename__ = "child"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    birth_date = Column(String(10), nullable=False)  # ISO date, YYYY-MM-DD
    photo_url = Column(Text, nullable=True)
    is_active = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    
    entries = relationship("DiaryEntry", back_populates="child")
    
    def __repr__(self):
        return f"<Child(id={self.id}, first_name='{self.first_name}')>"


class DiaryEntry(Base):
    """A diary entry written for one child."""
    __tablename__ = "diary_entry"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    child_id = Column(Integer, ForeignKey("child.id"), nullable=True)
    content = Column(Text, nullable=False)
    bookmark = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    
    child = relationship("Child", back_populates="entries")
    pictures = relationship(
        "DiaryPicture",
        back_populates="entry",
        cascade="all, delete-orphan"
    )
    
    def __repr__(self):
        return f"<DiaryEntry(id={self.id}, child_id={self.child_id})>"


class DiaryPicture(Base):
    """
    A photo embedded in a diary entry.
    
    ``image_uri`` is the MediaReference (bucket ``images``); ``image_id`` is the
    marker id the entry text uses to place the photo (``[IMG:<image_id>]``).
    """
    __tablename__ = "diary_picture"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    diary_entry_id = Column(Integer, ForeignKey("diary_entry.id", ondelete="CASCADE"), nullable=True)
    image_uri = Column(Text, nullable=False)
    image_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    
    entry = relationship("DiaryEntry", back_populates="pictures")
    
    def __repr__(self):
        return f"<DiaryPicture(id={self.id}, diary_entry_id={self.diary_entry_id})>"


class AppMeta(Base):
    """Key/value install metadata (e.g. the app version marker)."""
    __tablename__ = "app_meta"
    
    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
