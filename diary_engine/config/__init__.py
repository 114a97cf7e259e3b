"""Configuration loading and validation."""

from .models import (
    SystemConfig,
    PathsConfig,
    BackupConfig,
    CloudConfig,
    MediaConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "SystemConfig",
    "PathsConfig",
    "BackupConfig",
    "CloudConfig",
    "MediaConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
