"""Restore service for replacing on-device state with a backup archive."""

import logging
import json
import shutil
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Tuple

from sqlalchemy.exc import SQLAlchemyError

from diary_engine.db.database import DatabaseHandle
from diary_engine.repositories.app_meta_repository import AppMetaRepository, APP_VERSION_KEY
from diary_engine.services.backup_service import MEDIA_DIR_NAME, new_staging_dir
from diary_engine.services.copy_pool import CopyJob, ItemFailure, run_copy_jobs
from diary_engine.services.media_reference import InvalidReferenceError
from diary_engine.services.path_resolver import PathResolver

logger = logging.getLogger(__name__)

SQLITE_HEADER = b"SQLite format 3\x00"


class RestoreError(Exception):
    """Exception raised when restoration fails."""
    pass


class ArchiveStructureError(RestoreError):
    """The archive is missing its database or manifest, or they are unreadable."""
    pass


@dataclass
class RestoreReport:
    """
    Outcome of a restore.
    
    Once ``database_restored`` is True the swap has happened and is final;
    ``failures`` lists photo files that could not be put back.
    """
    database_restored: bool
    restored_files: int = 0
    failures: List[ItemFailure] = field(default_factory=list)
    # The open database handle and in-memory caches must be rebuilt
    restart_required: bool = True
    
    @property
    def success(self) -> bool:
        return self.database_restored


class RestoreEngine:
    """Service for restoring backup archives."""
    
    def __init__(
        self,
        database: DatabaseHandle,
        resolver: PathResolver,
        staging_root: Path = Path("data/staging"),
        database_entry: str = "diaryapp.db",
        manifest_name: str = "image_mapping.json",
        copy_workers: int = 4
    ):
        """
        Initialize restore service.
        
        Args:
            database: Handle on the live diary database
            resolver: Maps manifest references to their on-device location
            staging_root: Parent for temporary extraction directories
            database_entry: Name of the database file inside the archive
            manifest_name: Name of the manifest inside the archive
            copy_workers: Upper bound on parallel media copies
        """
        self.database = database
        self.resolver = resolver
        self.staging_root = Path(staging_root)
        self.database_entry = database_entry
        self.manifest_name = manifest_name
        self.copy_workers = copy_workers
    
    def restore(self, archive: Path, cleanup_archive: bool = False) -> RestoreReport:
        """
        Restore the database and photos from a backup archive.
        
        Stored references inside the restored database are not rewritten;
        photo files are put wherever those references point. Legacy references
        get picked up by the next migration pass.
        
        Args:
            archive: Path to the .zip backup
            cleanup_archive: Delete the archive afterwards (downloaded or
                imported temporary copies)
        
        Returns:
            RestoreReport (per-file failures do not undo the database swap)
        
        Raises:
            ArchiveStructureError: Archive unusable; nothing was changed
            RestoreError: Restoration failed
        """
        archive = Path(archive)
        logger.info(f"Starting restore from: {archive}")
        staging = None
        
        try:
            staging = new_staging_dir(self.staging_root, "restore")
            
            # Step 1: Extract archive
            logger.info("Extracting backup archive...")
            self._extract_archive(archive, staging)
            
            # Step 2: Validate before touching anything live
            snapshot, manifest = self._load_contents(staging)
            
            with self.database.exclusive():
                # Step 3: Replace the live database
                logger.info("Replacing database...")
                self._replace_database(snapshot)
                self._reset_version_marker()
                
                # Step 4: Put media files back where the restored rows expect them
                logger.info(f"Restoring {len(manifest)} media file(s)...")
                jobs, failures = self._plan_media_restore(manifest, staging / MEDIA_DIR_NAME)
                outcomes = run_copy_jobs(jobs, self.copy_workers)
            
            restored = 0
            for outcome in outcomes:
                if outcome.ok:
                    restored += 1
                else:
                    failures.append(outcome.as_failure())
            
            for failure in failures:
                logger.warning(f"Could not restore media {failure.reference}: {failure.reason}")
            logger.info(
                f"Restore completed: database replaced, {restored} media file(s) restored, "
                f"{len(failures)} failed"
            )
            return RestoreReport(database_restored=True, restored_files=restored, failures=failures)
        
        except RestoreError:
            logger.error("Restore failed", exc_info=True)
            raise
        except Exception as e:
            logger.error(f"Restore failed: {e}", exc_info=True)
            raise RestoreError(f"Failed to restore backup: {e}") from e
        
        finally:
            # Step 5: Cleanup
            if staging is not None and staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
                logger.debug(f"Cleaned up staging directory: {staging}")
            if cleanup_archive:
                archive.unlink(missing_ok=True)
    
    def _extract_archive(self, archive: Path, staging: Path) -> None:
        """Extract backup archive to the staging directory."""
        if not archive.is_file():
            raise RestoreError(f"Backup file not found: {archive}")
        
        try:
            with zipfile.ZipFile(archive, 'r') as zipf:
                zipf.extractall(staging)
            logger.debug(f"Extracted archive to: {staging}")
        except zipfile.BadZipFile:
            raise ArchiveStructureError(f"Invalid backup file (not a valid ZIP): {archive}")
    
    def _load_contents(self, staging: Path) -> Tuple[Path, Dict[str, str]]:
        """
        Check the extracted archive and load its manifest.
        
        Returns:
            (database snapshot path, manifest)
        """
        snapshot = staging / self.database_entry
        if not snapshot.is_file():
            raise ArchiveStructureError(f"Backup archive is missing {self.database_entry}")
        with open(snapshot, 'rb') as f:
            if f.read(len(SQLITE_HEADER)) != SQLITE_HEADER:
                raise ArchiveStructureError(f"{self.database_entry} is not a SQLite database")
        
        manifest_path = staging / self.manifest_name
        if not manifest_path.is_file():
            raise ArchiveStructureError(f"Backup archive is missing {self.manifest_name}")
        
        try:
            with open(manifest_path, 'r', encoding='utf-8') as f:
                manifest: Any = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ArchiveStructureError(f"Invalid {self.manifest_name}: {e}")
        
        if not isinstance(manifest, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in manifest.items()
        ):
            raise ArchiveStructureError(f"{self.manifest_name} must map reference strings to paths")
        
        logger.debug(f"Loaded manifest with {len(manifest)} entries")
        return snapshot, manifest
    
    def _replace_database(self, snapshot: Path) -> None:
        """
        Swap the live database file for the snapshot.
        
        Delete-then-copy, not rename: the live path ends up as a plain file of
        its own rather than the staged inode. The snapshot is first copied next
        to the live file so a full disk is detected before anything is deleted.
        """
        live_path = self.database.database_path
        live_path.parent.mkdir(parents=True, exist_ok=True)
        incoming = live_path.with_name(live_path.name + ".incoming")
        shutil.copyfile(snapshot, incoming)
        
        self.database.dispose()
        for path in [live_path, *self.database.sidecar_paths()]:
            path.unlink(missing_ok=True)
        
        try:
            shutil.copyfile(incoming, live_path)
        except OSError as e:
            raise RestoreError(
                f"Live database was removed but the restored copy could not be written: {e}. "
                f"The restored database is at {incoming}"
            ) from e
        incoming.unlink(missing_ok=True)
        logger.info(f"Database replaced: {live_path}")
    
    def _reset_version_marker(self) -> None:
        """Make the next startup run the reference migration on the restored rows."""
        try:
            self.database.init_schema()
            with self.database.session_scope() as db:
                AppMetaRepository(db).delete(APP_VERSION_KEY)
        except SQLAlchemyError as e:
            logger.warning(f"Could not reset app version marker after restore: {e}")
    
    def _plan_media_restore(
        self,
        manifest: Dict[str, str],
        media_dir: Path
    ) -> Tuple[List[CopyJob], List[ItemFailure]]:
        """Map each manifest entry to a copy from staging to its on-device location."""
        jobs = []
        failures = []
        targets = set()
        
        for reference, relative in manifest.items():
            relative_path = PurePosixPath(relative)
            if not relative or relative_path.is_absolute() or ".." in relative_path.parts:
                failures.append(ItemFailure(reference=reference, reason=f"unsafe archive path: {relative}"))
                continue
            
            try:
                target = self.resolver.target_path(reference)
            except InvalidReferenceError as e:
                failures.append(ItemFailure(reference=reference, reason=str(e)))
                continue
            
            if target in targets:
                # Two spellings of the same file (e.g. URI and bare path)
                logger.debug(f"Skipping duplicate restore target {target} for {reference}")
                continue
            targets.add(target)
            
            jobs.append(CopyJob(
                reference=reference,
                source=media_dir.joinpath(*relative_path.parts),
                destination=target
            ))
        
        return jobs, failures
