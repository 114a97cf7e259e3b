"""Database package for Diary Engine."""

from .database import Base, DatabaseHandle

__all__ = ["Base", "DatabaseHandle"]
