"""Transport channels for backup archive bytes."""

from .base import ChannelError, ChannelUnavailableError, RemoteBackupNotFoundError
from .cloud import CloudStorageChannel
from .file_share import FileShareChannel

__all__ = [
    "ChannelError",
    "ChannelUnavailableError",
    "RemoteBackupNotFoundError",
    "CloudStorageChannel",
    "FileShareChannel",
]
