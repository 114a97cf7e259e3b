"""Errors shared by backup transport channels."""


class ChannelError(Exception):
    """Base exception for backup channel errors."""
    pass


class ChannelUnavailableError(ChannelError):
    """The channel cannot be reached or is not authenticated."""
    pass


class RemoteBackupNotFoundError(ChannelError):
    """The channel has no backup in its slot."""
    pass
