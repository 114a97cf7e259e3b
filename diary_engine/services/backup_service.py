"""Backup service for snapshotting the diary database with its photos."""

import logging
import json
import os
import shutil
import uuid
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Tuple

from diary_engine.db.database import DatabaseHandle
from diary_engine.repositories.media_slot_repository import MediaSlotRepository
from diary_engine.services.copy_pool import CopyJob, CopyOutcome, ItemFailure, run_copy_jobs
from diary_engine.services.media_reference import (
    CanonicalReference,
    InvalidReferenceError,
    parse_reference,
)
from diary_engine.services.path_resolver import PathResolver

logger = logging.getLogger(__name__)

MEDIA_DIR_NAME = "media"
LEGACY_MEDIA_DIR_NAME = "legacy"


class BackupError(Exception):
    """Raised when backup operation fails."""
    pass


@dataclass
class BackupResult:
    """A finished backup archive and what went into it."""
    archive_path: Path
    manifest: Dict[str, str]
    skipped: List[ItemFailure] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    
    @property
    def media_count(self) -> int:
        return len(self.manifest)


def new_staging_dir(staging_root: Path, purpose: str) -> Path:
    """Create a fresh, uniquely named staging directory."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    staging = Path(staging_root) / f"{purpose}_{timestamp}_{uuid.uuid4().hex[:8]}"
    staging.mkdir(parents=True, exist_ok=False)
    return staging


class BackupArchiver:
    """
    Service for creating backup archives.
    
    An archive holds three top-level entries:
    - the database file (fixed name)
    - ``media/`` with every photo file the database references
    - the manifest, mapping each reference string exactly as the database held
      it to the file's path inside ``media/``
    """
    
    def __init__(
        self,
        database: DatabaseHandle,
        resolver: PathResolver,
        staging_root: Path = Path("data/staging"),
        backups_dir: Path = Path("data/backups"),
        archive_name: str = "diary_app_backup.zip",
        database_entry: str = "diaryapp.db",
        manifest_name: str = "image_mapping.json",
        copy_workers: int = 4
    ):
        """
        Initialize backup service.
        
        Args:
            database: Handle on the live diary database
            resolver: Locates the files behind stored references
            staging_root: Parent for temporary build directories
            backups_dir: Where finished archives are placed
            archive_name: Archive filename (a new backup replaces the old one)
            database_entry: Name of the database file inside the archive
            manifest_name: Name of the manifest inside the archive
            copy_workers: Upper bound on parallel media copies
        """
        self.database = database
        self.resolver = resolver
        self.staging_root = Path(staging_root)
        self.backups_dir = Path(backups_dir)
        self.archive_name = archive_name
        self.database_entry = database_entry
        self.manifest_name = manifest_name
        self.copy_workers = copy_workers
    
    def create_backup(self) -> BackupResult:
        """
        Create a backup archive of the database and its photos.
        
        References that cannot be resolved (or whose file cannot be read) are
        left out of the archive and reported in ``skipped``. Anything else
        going wrong aborts the backup; no partial archive is left behind.
        
        Returns:
            BackupResult with the archive path and manifest
        
        Raises:
            BackupError: If backup creation fails
        """
        logger.info("Starting backup")
        staging = None
        
        try:
            staging = new_staging_dir(self.staging_root, "backup")
            
            with self.database.exclusive():
                # Step 1: Snapshot the database file
                logger.info("Copying database snapshot...")
                self._snapshot_database(staging)
                
                # Step 2: Collect references
                with self.database.session_scope() as db:
                    references = MediaSlotRepository(db).list_references()
                logger.info(f"Found {len(references)} media reference(s)")
                
                # Step 3: Copy media files
                logger.info("Collecting media files...")
                jobs, skipped = self._plan_media_copies(references, staging / MEDIA_DIR_NAME)
                outcomes = run_copy_jobs(jobs, self.copy_workers)
                manifest, unreadable = self._fold_outcomes(outcomes, staging / MEDIA_DIR_NAME)
                skipped.extend(unreadable)
                
                # Step 4: Write manifest
                self._write_manifest(staging, manifest)
            
            # Step 5: Compress
            logger.info("Creating backup archive...")
            archive_path = self._create_archive(staging)
            
            for failure in skipped:
                logger.warning(f"Backup skipped media {failure.reference}: {failure.reason}")
            logger.info(
                f"Backup created successfully: {archive_path} "
                f"({len(manifest)} media file(s), {len(skipped)} skipped, "
                f"{archive_path.stat().st_size / (1024*1024):.2f} MB)"
            )
            return BackupResult(archive_path=archive_path, manifest=manifest, skipped=skipped)
        
        except BackupError:
            logger.error("Backup failed", exc_info=True)
            raise
        except Exception as e:
            logger.error(f"Backup failed: {e}", exc_info=True)
            raise BackupError(f"Failed to create backup: {e}") from e
        
        finally:
            # Step 6: Cleanup staging directory
            if staging is not None and staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
                logger.debug(f"Cleaned up staging directory: {staging}")
    
    def _snapshot_database(self, staging: Path) -> None:
        """Copy the live database file into staging."""
        db_path = self.database.database_path
        if not db_path.is_file():
            raise BackupError(f"Database file not found: {db_path}")
        
        self.database.checkpoint()
        shutil.copy2(db_path, staging / self.database_entry)
    
    def _plan_media_copies(
        self,
        references: List[str],
        media_dir: Path
    ) -> Tuple[List[CopyJob], List[ItemFailure]]:
        """
        Resolve each reference and decide where it goes inside ``media/``.
        
        Returns:
            (copy jobs, references skipped because they could not be resolved)
        """
        jobs = []
        skipped = []
        
        for index, reference in enumerate(references):
            source = self.resolver.resolve(reference)
            if source is None:
                skipped.append(ItemFailure(reference=reference, reason="file not found"))
                continue
            relative = self.archive_relative_path(reference, index, source)
            jobs.append(CopyJob(reference=reference, source=source, destination=media_dir / relative))
        
        return jobs, skipped
    
    @staticmethod
    def archive_relative_path(reference: str, index: int, source: Path) -> str:
        """
        POSIX path of a reference's file inside ``media/``.
        
        Canonical references keep their bucket layout. Everything else goes
        under ``legacy/`` with an index prefix so equal basenames from
        different directories never collide.
        """
        try:
            parsed = parse_reference(reference)
        except InvalidReferenceError:
            parsed = None
        if isinstance(parsed, CanonicalReference):
            return f"{parsed.bucket.value}/{parsed.filename}"
        return f"{LEGACY_MEDIA_DIR_NAME}/{index:04d}_{source.name}"
    
    @staticmethod
    def _fold_outcomes(
        outcomes: List[CopyOutcome],
        media_dir: Path
    ) -> Tuple[Dict[str, str], List[ItemFailure]]:
        """
        Build the manifest from copy outcomes.
        
        Unreadable sources are skipped; a failure writing into staging aborts.
        """
        manifest = {}
        unreadable = []
        for outcome in outcomes:
            if outcome.ok:
                relative = outcome.job.destination.relative_to(media_dir).as_posix()
                manifest[outcome.job.reference] = relative
            elif outcome.source_failed:
                unreadable.append(outcome.as_failure())
            else:
                raise BackupError(
                    f"Failed to copy {outcome.job.source} into backup: {outcome.error}"
                ) from outcome.error
        return manifest, unreadable
    
    def _write_manifest(self, staging: Path, manifest: Dict[str, str]) -> None:
        with open(staging / self.manifest_name, 'w', encoding='utf-8') as f:
            json.dump(manifest, f, indent=2, ensure_ascii=False)
    
    def _create_archive(self, staging: Path) -> Path:
        """
        Zip the staging directory into the backups directory.
        
        The archive is written under a hidden temporary name and renamed into
        place once complete.
        """
        (staging / MEDIA_DIR_NAME).mkdir(exist_ok=True)
        self.backups_dir.mkdir(parents=True, exist_ok=True)
        
        backup_path = self.backups_dir / self.archive_name
        partial_path = self.backups_dir / f".{self.archive_name}.partial"
        
        try:
            with zipfile.ZipFile(partial_path, 'w', zipfile.ZIP_DEFLATED) as zipf:
                # Walk through staging and add all entries (cross-platform)
                for root, dirs, files in os.walk(staging):
                    root_path = Path(root)
                    for directory in sorted(dirs):
                        dir_path = root_path / directory
                        zipf.write(dir_path, dir_path.relative_to(staging).as_posix() + "/")
                    for file in sorted(files):
                        file_path = root_path / file
                        zipf.write(file_path, file_path.relative_to(staging).as_posix())
            os.replace(partial_path, backup_path)
        except Exception:
            partial_path.unlink(missing_ok=True)
            raise
        
        return backup_path
