"""
File channel for backup archives.

Export hands a finished archive to the user's save/share destination; import
takes an archive the user picked and copies it into staging, the way a
document picker copies into the app's cache before the app reads it.
"""

import logging
import shutil
import uuid
import zipfile
from pathlib import Path

from .base import ChannelError

logger = logging.getLogger(__name__)


class FileShareChannel:
    """Moves archive files between app storage and user-visible locations."""
    
    def __init__(self, export_dir: Path, staging_root: Path):
        """
        Args:
            export_dir: Save/share destination for exported archives
            staging_root: Where picked archives are copied before restore
        """
        self.export_dir = Path(export_dir)
        self.staging_root = Path(staging_root)
    
    def export(self, archive: Path) -> Path:
        """
        Copy an archive to the export destination.
        
        Returns:
            Path of the exported copy
        
        Raises:
            ChannelError: If the copy fails
        """
        archive = Path(archive)
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            destination = self.export_dir / archive.name
            shutil.copyfile(archive, destination)
        except OSError as e:
            raise ChannelError(f"Failed to export backup file: {e}") from e
        
        logger.info(f"Exported backup to {destination}")
        return destination
    
    def import_archive(self, picked: Path) -> Path:
        """
        Copy a user-picked archive into staging.
        
        Returns:
            Path of the temporary copy (the caller deletes it)
        
        Raises:
            ChannelError: File missing, unreadable or not a zip archive
        """
        picked = Path(picked)
        if not picked.is_file():
            raise ChannelError(f"Backup file not found: {picked}")
        if not zipfile.is_zipfile(picked):
            raise ChannelError(f"Selected file is not a backup archive: {picked}")
        
        try:
            self.staging_root.mkdir(parents=True, exist_ok=True)
            destination = self.staging_root / f"import_{uuid.uuid4().hex[:8]}_{picked.name}"
            shutil.copyfile(picked, destination)
        except OSError as e:
            raise ChannelError(f"Failed to import backup file: {e}") from e
        
        logger.info(f"Imported backup {picked} -> {destination}")
        return destination
