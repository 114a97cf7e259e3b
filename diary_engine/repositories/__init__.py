"""Repository pattern for database operations."""

from .media_slot_repository import MediaSlot, MediaSlotRepository, SlotKind
from .app_meta_repository import AppMetaRepository, APP_VERSION_KEY

__all__ = [
    "MediaSlot",
    "MediaSlotRepository",
    "SlotKind",
    "AppMetaRepository",
    "APP_VERSION_KEY",
]
