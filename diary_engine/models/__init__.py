"""Models package for Diary Engine."""

from .diary import Child, DiaryEntry, DiaryPicture, AppMeta

__all__ = [
    "Child",
    "DiaryEntry",
    "DiaryPicture",
    "AppMeta",
]
