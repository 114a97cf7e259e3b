"""
Moves backup archives between this device and the outside world.

Ties the archiver and restore engine to a transport channel: build an archive
and ship it, or fetch one and restore it. Channel availability is checked
before anything local changes, and temporary archives never outlive the call.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from diary_engine.services.backup_service import BackupArchiver, BackupResult
from diary_engine.services.channels import (
    ChannelError,
    ChannelUnavailableError,
    CloudStorageChannel,
    FileShareChannel,
)
from diary_engine.services.restore_service import RestoreEngine, RestoreReport

logger = logging.getLogger(__name__)


class BackupTransferService:
    """Backup/restore flows over the cloud slot and the file channel."""
    
    def __init__(
        self,
        archiver: BackupArchiver,
        restorer: RestoreEngine,
        file_channel: FileShareChannel,
        cloud_channel: Optional[CloudStorageChannel] = None,
        remote_filename: str = "diary_app_backup.zip",
        staging_root: Path = Path("data/staging")
    ):
        """
        Initialize transfer service.
        
        Args:
            archiver: Builds local archives
            restorer: Restores from local archives
            file_channel: Export/import through user-visible files
            cloud_channel: Cloud slot (None when cloud backup is disabled)
            remote_filename: Name of the single backup file in the cloud slot
            staging_root: Where downloaded archives are kept until restored
        """
        self.archiver = archiver
        self.restorer = restorer
        self.file_channel = file_channel
        self.cloud_channel = cloud_channel
        self.remote_filename = remote_filename
        self.staging_root = Path(staging_root)
    
    def upload_backup_to_cloud(self) -> BackupResult:
        """
        Create a backup and upload it to the cloud slot.
        
        Returns:
            BackupResult for the uploaded archive (the local copy is deleted)
        
        Raises:
            ChannelUnavailableError: Cloud not reachable; no archive was built
            ChannelError: Upload failed
            BackupError: Archive creation failed
        """
        cloud = self._require_cloud()
        
        result = self.archiver.create_backup()
        try:
            cloud.upload(self.remote_filename, result.archive_path.read_bytes())
        finally:
            result.archive_path.unlink(missing_ok=True)
        
        logger.info(f"Backup uploaded to cloud ({result.media_count} media file(s))")
        return result
    
    def restore_from_cloud(self) -> RestoreReport:
        """
        Download the cloud backup and restore it.
        
        Raises:
            ChannelUnavailableError: Cloud not reachable; nothing was changed
            RemoteBackupNotFoundError: No backup in the cloud slot
            RestoreError: Restoration failed
        """
        cloud = self._require_cloud()
        data = cloud.download(self.remote_filename)
        
        self.staging_root.mkdir(parents=True, exist_ok=True)
        download_path = self.staging_root / f"download_{uuid.uuid4().hex[:8]}_{self.remote_filename}"
        try:
            download_path.write_bytes(data)
        except OSError as e:
            download_path.unlink(missing_ok=True)
            raise ChannelError(f"Failed to save downloaded backup: {e}") from e
        
        logger.info(f"Downloaded cloud backup to {download_path}")
        return self.restorer.restore(download_path, cleanup_archive=True)
    
    def export_backup_file(self) -> Path:
        """
        Create a backup and hand it to the export destination.
        
        Returns:
            Path of the exported archive
        """
        result = self.archiver.create_backup()
        try:
            return self.file_channel.export(result.archive_path)
        finally:
            result.archive_path.unlink(missing_ok=True)
    
    def import_backup_file(self, picked: Path) -> RestoreReport:
        """
        Restore from an archive the user picked.
        
        Args:
            picked: Archive chosen by the user (left untouched)
        """
        imported = self.file_channel.import_archive(picked)
        return self.restorer.restore(imported, cleanup_archive=True)
    
    def _require_cloud(self) -> CloudStorageChannel:
        if self.cloud_channel is None:
            raise ChannelUnavailableError("Cloud backup is not enabled")
        self.cloud_channel.ensure_available()
        return self.cloud_channel
