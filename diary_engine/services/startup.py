"""Service wiring and the startup sequence."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from diary_engine.config import SystemConfig
from diary_engine.db.database import DatabaseHandle
from diary_engine.repositories.media_slot_repository import MediaSlotRepository
from diary_engine.services.backup_service import BackupArchiver
from diary_engine.services.backup_transfer import BackupTransferService
from diary_engine.services.channels import CloudStorageChannel, FileShareChannel
from diary_engine.services.media_store import MediaStore
from diary_engine.services.migration_runner import MigrationReport, MigrationRunner
from diary_engine.services.path_resolver import PathResolver
from diary_engine.services.restore_service import RestoreEngine

logger = logging.getLogger(__name__)


@dataclass
class DiaryServices:
    """Every service, built against one configuration and one database handle."""
    config: SystemConfig
    database: DatabaseHandle
    resolver: PathResolver
    media_store: MediaStore
    migration_runner: MigrationRunner
    archiver: BackupArchiver
    restorer: RestoreEngine
    transfer: BackupTransferService
    cloud_channel: Optional[CloudStorageChannel] = None
    
    def close(self) -> None:
        if self.cloud_channel is not None:
            self.cloud_channel.close()
        self.database.dispose()


@dataclass
class StartupReport:
    """What happened during startup."""
    directories_ready: bool
    migration: MigrationReport
    swept: List[str] = field(default_factory=list)


def build_services(config: SystemConfig, cloud_channel: Optional[CloudStorageChannel] = None) -> DiaryServices:
    """
    Build the service graph from configuration.
    
    Args:
        config: System configuration
        cloud_channel: Use this channel instead of one built from ``config.cloud``
    
    Returns:
        DiaryServices (nothing is touched on disk yet; see ``run_startup``)
    """
    paths = config.paths
    database = DatabaseHandle(paths.database)
    resolver = PathResolver(documents_root=paths.documents, cache_root=paths.cache)
    media_store = MediaStore(paths.documents)
    
    archiver = BackupArchiver(
        database=database,
        resolver=resolver,
        staging_root=paths.staging,
        backups_dir=paths.backups,
        archive_name=config.backup.archive_name,
        database_entry=config.backup.database_entry,
        manifest_name=config.backup.manifest_name,
        copy_workers=config.backup.copy_workers
    )
    restorer = RestoreEngine(
        database=database,
        resolver=resolver,
        staging_root=paths.staging,
        database_entry=config.backup.database_entry,
        manifest_name=config.backup.manifest_name,
        copy_workers=config.backup.copy_workers
    )
    
    if cloud_channel is None and config.cloud.enabled:
        cloud_channel = CloudStorageChannel(
            base_url=config.cloud.base_url,
            token=config.cloud.token,
            timeout=config.cloud.timeout_seconds
        )
    
    transfer = BackupTransferService(
        archiver=archiver,
        restorer=restorer,
        file_channel=FileShareChannel(export_dir=paths.exports, staging_root=paths.staging),
        cloud_channel=cloud_channel,
        remote_filename=config.cloud.remote_filename,
        staging_root=paths.staging
    )
    
    return DiaryServices(
        config=config,
        database=database,
        resolver=resolver,
        media_store=media_store,
        migration_runner=MigrationRunner(database, media_store, resolver, config.app_version),
        archiver=archiver,
        restorer=restorer,
        transfer=transfer,
        cloud_channel=cloud_channel
    )


def run_startup(services: DiaryServices) -> StartupReport:
    """
    Bring storage up to date for this app version.
    
    Schema first, then bucket directories, then the legacy reference
    migration, then (when enabled) the orphan sweep.
    """
    services.database.init_schema()
    logger.info("✓ Database initialized")
    
    directories_ready = services.media_store.initialize_directories()
    if directories_ready:
        logger.info("✓ Media directories ready")
    else:
        logger.warning("⚠ Media directories could not all be created")
    
    migration = services.migration_runner.run()
    report = StartupReport(directories_ready=directories_ready, migration=migration)
    
    media_config = services.config.media
    if media_config.sweep_orphans_on_startup:
        report.swept = sweep_orphans(services)
    
    return report


def sweep_orphans(services: DiaryServices, grace_seconds: Optional[int] = None) -> List[str]:
    """Delete stored media files no database row references."""
    if grace_seconds is None:
        grace_seconds = services.config.media.orphan_grace_seconds
    with services.database.session_scope() as db:
        referenced = MediaSlotRepository(db).list_references()
        # Held under the lock so no row can start referencing a file mid-sweep
        return services.media_store.sweep_orphans(referenced, grace_seconds)
