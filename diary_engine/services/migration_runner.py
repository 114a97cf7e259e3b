"""
One-time migration of legacy media references into canonical storage.

Early versions stored the image picker's own file path, which points into a
cache the OS may purge at any time. On the first start of a new app version
every such reference is copied into its durable bucket and the owning row is
rewritten. Each row is migrated on its own: a file the OS already reclaimed is
recorded as a failure and the pass moves on.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from diary_engine.db.database import DatabaseHandle
from diary_engine.repositories.app_meta_repository import AppMetaRepository, APP_VERSION_KEY
from diary_engine.repositories.media_slot_repository import MediaSlot, MediaSlotRepository, SlotKind
from diary_engine.services.media_reference import is_legacy
from diary_engine.services.media_store import MediaStore, MediaStoreError, DEFAULT_SUFFIX
from diary_engine.services.path_resolver import PathResolver

logger = logging.getLogger(__name__)

FILENAME_PREFIXES = {
    SlotKind.CHILD_PHOTO: "profile",
    SlotKind.DIARY_PICTURE: "diary",
}


@dataclass(frozen=True)
class MigrationFailure:
    """A legacy reference that could not be migrated."""
    kind: SlotKind
    row_id: int
    reference: str
    reason: str


@dataclass
class MigrationReport:
    """Outcome of one migration pass."""
    current_version: str
    previous_version: Optional[str] = None
    skipped: bool = False
    migrated_count: int = 0
    failures: List[MigrationFailure] = field(default_factory=list)


class MigrationRunner:
    """Rewrites legacy references into canonical form once per app version."""
    
    def __init__(
        self,
        database: DatabaseHandle,
        media_store: MediaStore,
        resolver: PathResolver,
        app_version: str
    ):
        """
        Initialize migration runner.
        
        Args:
            database: Handle on the live diary database
            media_store: Destination for migrated files
            resolver: Used to find the legacy file on disk
            app_version: Version of the running app (gate value)
        """
        self.database = database
        self.media_store = media_store
        self.resolver = resolver
        self.app_version = app_version
        self._last_timestamp = 0
    
    def needs_run(self) -> bool:
        """True when the stored version marker differs from the running version."""
        with self.database.session_scope() as db:
            return AppMetaRepository(db).get(APP_VERSION_KEY) != self.app_version
    
    def run(self, force: bool = False) -> MigrationReport:
        """
        Migrate every legacy reference, if this version has not done so yet.
        
        Args:
            force: Ignore the version marker
        
        Returns:
            MigrationReport with the migrated count and per-row failures
        """
        with self.database.session_scope() as db:
            meta = AppMetaRepository(db)
            previous = meta.get(APP_VERSION_KEY)
            report = MigrationReport(current_version=self.app_version, previous_version=previous)
            
            if previous == self.app_version and not force:
                logger.info(f"Media migration already done for version {self.app_version}")
                report.skipped = True
                return report
            
            logger.info(f"Running media migration ({previous or 'none'} -> {self.app_version})")
            slots = MediaSlotRepository(db)
            legacy_slots = [slot for slot in slots.list_slots() if is_legacy(slot.reference)]
            
            for slot in legacy_slots:
                failure = self._migrate_slot(db, slots, slot)
                if failure is None:
                    report.migrated_count += 1
                else:
                    report.failures.append(failure)
                    logger.warning(
                        f"Could not migrate {slot.kind.value} row {slot.row_id} "
                        f"({slot.reference}): {failure.reason}"
                    )
            
            # Written even after failures; re-running at the same version would
            # only repeat the same misses.
            try:
                meta.set(APP_VERSION_KEY, self.app_version)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to record app version marker: {e}")
        
        logger.info(
            f"Media migration finished: {report.migrated_count} migrated, "
            f"{len(report.failures)} failed"
        )
        return report
    
    def _migrate_slot(
        self,
        db: Session,
        slots: MediaSlotRepository,
        slot: MediaSlot
    ) -> Optional[MigrationFailure]:
        """Migrate one row. Returns a failure, or None on success."""
        source = self.resolver.resolve(slot.reference)
        if source is None:
            return self._failure(slot, "source file no longer exists")
        
        filename = self._target_filename(slot, source)
        try:
            new_reference = self.media_store.store(source, slot.bucket, filename)
        except MediaStoreError as e:
            return self._failure(slot, str(e))
        
        try:
            if not slots.update_reference(slot, new_reference):
                self._discard_copy(new_reference)
                return self._failure(slot, "row changed or was deleted during migration")
        except SQLAlchemyError as e:
            db.rollback()
            self._discard_copy(new_reference)
            return self._failure(slot, f"database update failed: {e}")
        
        logger.debug(f"Migrated {slot.reference} -> {new_reference}")
        return None
    
    def _discard_copy(self, reference: str) -> None:
        """Remove a stored copy no row ended up pointing at."""
        try:
            self.media_store.path_for(reference).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove unused migrated file {reference}: {e}")
    
    def _target_filename(self, slot: MediaSlot, source: Path) -> str:
        prefix = FILENAME_PREFIXES[slot.kind]
        owner = slot.owner_id if slot.owner_id is not None else slot.row_id
        suffix = source.suffix.lower() or DEFAULT_SUFFIX
        return f"{prefix}_{owner}_{self._next_timestamp()}{suffix}"
    
    def _next_timestamp(self) -> int:
        """Epoch milliseconds, strictly increasing so filenames never collide."""
        now = int(time.time() * 1000)
        self._last_timestamp = max(now, self._last_timestamp + 1)
        return self._last_timestamp
    
    @staticmethod
    def _failure(slot: MediaSlot, reason: str) -> MigrationFailure:
        return MigrationFailure(
            kind=slot.kind,
            row_id=slot.row_id,
            reference=slot.reference,
            reason=reason
        )
