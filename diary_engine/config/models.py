"""Pydantic models for configuration validation."""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator, ConfigDict

from diary_engine import __version__


class PathsConfig(BaseModel):
    """File path configuration."""
    
    # Durable, app-private storage; holds the profiles/ and images/ buckets
    documents: Path = Path("data/documents")
    # Volatile OS cache; legacy references point in here
    cache: Path = Path("data/cache")
    database: Path = Path("data/documents/SQLite/diaryapp.db")
    staging: Path = Path("data/staging")
    backups: Path = Path("data/backups")
    exports: Path = Path("data/exports")
    
    @field_validator('documents', 'cache', 'database', 'staging', 'backups', 'exports')
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure paths are cross-platform."""
        return Path(v)


class BackupConfig(BaseModel):
    """Backup archive layout and copy settings."""
    
    archive_name: str = "diary_app_backup.zip"
    database_entry: str = "diaryapp.db"
    manifest_name: str = "image_mapping.json"
    copy_workers: int = Field(default=4, gt=0, le=32)
    
    @field_validator('archive_name')
    @classmethod
    def validate_archive_name(cls, v: str) -> str:
        """Archive name must be a bare .zip filename."""
        if '/' in v or '\\' in v:
            raise ValueError('archive_name must not contain path separators')
        if not v.lower().endswith('.zip'):
            raise ValueError('archive_name must end with .zip')
        return v


class CloudConfig(BaseModel):
    """Cloud backup slot configuration (single provider, single fixed file)."""
    
    enabled: bool = False
    base_url: str = "http://localhost:8090/backups"
    token: Optional[str] = None
    timeout_seconds: float = Field(default=60.0, gt=0)
    remote_filename: str = "diary_app_backup.zip"
    
    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensure URL is properly formatted."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('base_url must start with http:// or https://')
        return v.rstrip('/')


class MediaConfig(BaseModel):
    """Media store housekeeping."""
    
    sweep_orphans_on_startup: bool = Field(
        default=False,
        description="Delete stored files that no database row references"
    )
    orphan_grace_seconds: int = Field(
        default=3600,
        ge=0,
        description="Files younger than this are never swept (store() runs before the row is saved)"
    )


class SystemConfig(BaseModel):
    """Top-level system configuration."""
    
    model_config = ConfigDict(extra='ignore')
    
    app_version: str = __version__
    paths: PathsConfig = Field(default_factory=PathsConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    cloud: CloudConfig = Field(default_factory=CloudConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    debug: bool = False
    api_host: str = "localhost"
    api_port: int = Field(default=8080, gt=0, le=65535)
