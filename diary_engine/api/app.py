"""FastAPI application and routes."""

import logging
import shutil
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import BaseModel

from diary_engine import __version__
from diary_engine.config import ConfigLoader
from diary_engine.repositories.media_slot_repository import MediaSlotRepository
from diary_engine.services.backup_service import BackupError, BackupResult
from diary_engine.services.channels import (
    ChannelError,
    ChannelUnavailableError,
    RemoteBackupNotFoundError,
)
from diary_engine.services.copy_pool import ItemFailure
from diary_engine.services.media_reference import Bucket
from diary_engine.services.media_store import MediaStoreError
from diary_engine.services.restore_service import ArchiveStructureError, RestoreError, RestoreReport
from diary_engine.services.startup import DiaryServices, build_services, run_startup

logger = logging.getLogger(__name__)

# Global state
app_state = {
    "config": None,  # SystemConfig override; loaded from config/system.yaml when None
    "services": None,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting Diary Engine...")
    
    config = app_state["config"] or ConfigLoader().load_system_config()
    services = build_services(config)
    startup = run_startup(services)
    
    migration = startup.migration
    if not migration.skipped:
        logger.info(
            f"✓ Media migration: {migration.migrated_count} migrated, "
            f"{len(migration.failures)} failed"
        )
    
    app_state["services"] = services
    logger.info("✓ Diary Engine ready")
    
    yield
    
    # Shutdown
    logger.info("Shutting down Diary Engine...")
    services.close()
    app_state["services"] = None


# Create FastAPI app
app = FastAPI(
    title="Diary Engine",
    description="Local-first diary media storage and backup",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    app_version: str
    cloud_enabled: bool


class StoredMediaResponse(BaseModel):
    """Reference of a newly stored photo."""
    reference: str


class ItemFailureResponse(BaseModel):
    reference: str
    reason: str


class BackupResponse(BaseModel):
    """Summary of a backup that was shipped elsewhere."""
    media_count: int
    skipped: List[ItemFailureResponse]


class RestoreResponse(BaseModel):
    """Outcome of a restore."""
    database_restored: bool
    restored_files: int
    failures: List[ItemFailureResponse]
    restart_required: bool


class MigrationResponse(BaseModel):
    """Outcome of a migration pass."""
    current_version: str
    previous_version: Optional[str] = None
    skipped: bool
    migrated_count: int
    failures: List[ItemFailureResponse]


def get_services() -> DiaryServices:
    services = app_state["services"]
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


def _failures(failures: List[ItemFailure]) -> List[ItemFailureResponse]:
    return [ItemFailureResponse(reference=f.reference, reason=f.reason) for f in failures]


def _backup_response(result: BackupResult) -> BackupResponse:
    return BackupResponse(media_count=result.media_count, skipped=_failures(result.skipped))


def _restore_response(report: RestoreReport) -> RestoreResponse:
    return RestoreResponse(
        database_restored=report.database_restored,
        restored_files=report.restored_files,
        failures=_failures(report.failures),
        restart_required=report.restart_required
    )


def _save_upload(file: UploadFile, directory: Path, suffix: str) -> Path:
    """Spool an uploaded file into a uniquely named file under ``directory``."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"upload_{uuid.uuid4().hex[:8]}{suffix}"
    with open(path, 'wb') as f:
        shutil.copyfileobj(file.file, f)
    return path


def _may_serve(services: DiaryServices, ref: str, path: Path) -> bool:
    """
    Only media files are served: files inside a bucket or the cache root, or
    files a diary row actually references.
    """
    real_path = path.resolve()
    roots = [services.media_store.bucket_dir(bucket) for bucket in Bucket]
    roots.append(services.config.paths.cache)
    if any(real_path.is_relative_to(Path(root).resolve()) for root in roots):
        return True
    with services.database.session_scope() as db:
        return ref in MediaSlotRepository(db).list_references()


@app.get("/health", response_model=HealthResponse)
def health_check():
    """Check system health."""
    services = get_services()
    return HealthResponse(
        status="healthy",
        app_version=services.config.app_version,
        cloud_enabled=services.cloud_channel is not None
    )


@app.post("/media/{bucket}", response_model=StoredMediaResponse)
def store_media(bucket: str, file: UploadFile = File(...)):
    """
    Store an uploaded photo in a media bucket.
    
    Returns the canonical reference to save on the owning row.
    """
    services = get_services()
    try:
        target_bucket = Bucket(bucket)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown bucket '{bucket}' (expected one of: {', '.join(b.value for b in Bucket)})"
        )
    
    suffix = Path(file.filename or "").suffix.lower()
    upload_path = _save_upload(file, services.config.paths.staging, suffix)
    try:
        reference = services.media_store.store(upload_path, target_bucket)
    except MediaStoreError as e:
        logger.error(f"Failed to store uploaded media: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to store media: {e}")
    finally:
        upload_path.unlink(missing_ok=True)
    
    return StoredMediaResponse(reference=reference)


@app.get("/media/resolve")
def resolve_media(ref: str = Query(..., description="Stored media reference")):
    """Return the file behind a stored reference."""
    services = get_services()
    path = services.resolver.resolve(ref)
    if path is None or not _may_serve(services, ref, path):
        raise HTTPException(status_code=404, detail=f"Media not found: {ref}")
    return FileResponse(path=str(path), filename=path.name)


@app.post("/backup")
def create_backup():
    """Create a backup archive and return it for download."""
    services = get_services()
    try:
        result = services.archiver.create_backup()
    except BackupError as e:
        raise HTTPException(status_code=500, detail=str(e))
    
    # The archive only lives for the length of the download
    cleanup = BackgroundTasks()
    cleanup.add_task(result.archive_path.unlink, missing_ok=True)
    
    return FileResponse(
        path=str(result.archive_path),
        media_type="application/zip",
        filename=result.archive_path.name,
        headers={
            "X-Media-Count": str(result.media_count),
            "X-Skipped-Count": str(len(result.skipped)),
        },
        background=cleanup
    )


@app.post("/backup/cloud", response_model=BackupResponse)
def backup_to_cloud():
    """Create a backup and upload it to the cloud slot."""
    services = get_services()
    try:
        result = services.transfer.upload_backup_to_cloud()
    except ChannelUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except (BackupError, ChannelError) as e:
        logger.error(f"Cloud backup failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    
    return _backup_response(result)


@app.post("/restore", response_model=RestoreResponse)
def restore_backup(file: UploadFile = File(...)):
    """
    Restore from an uploaded backup archive.
    
    Replaces the database and photos; the app must be restarted afterwards.
    """
    services = get_services()
    if not (file.filename or "").lower().endswith('.zip'):
        raise HTTPException(status_code=400, detail="File must be a ZIP archive (.zip)")
    
    archive_path = _save_upload(file, services.config.paths.staging, ".zip")
    try:
        report = services.restorer.restore(archive_path, cleanup_archive=True)
    except ArchiveStructureError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RestoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    
    return _restore_response(report)


@app.post("/restore/cloud", response_model=RestoreResponse)
def restore_from_cloud():
    """Download the cloud backup and restore it."""
    services = get_services()
    try:
        report = services.transfer.restore_from_cloud()
    except ChannelUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except RemoteBackupNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ArchiveStructureError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (RestoreError, ChannelError) as e:
        raise HTTPException(status_code=500, detail=str(e))
    
    return _restore_response(report)


@app.post("/migrations/run", response_model=MigrationResponse)
def run_migrations(force: bool = Query(False, description="Run even if this version already migrated")):
    """Run the legacy media reference migration."""
    services = get_services()
    report = services.migration_runner.run(force=force)
    return MigrationResponse(
        current_version=report.current_version,
        previous_version=report.previous_version,
        skipped=report.skipped,
        migrated_count=report.migrated_count,
        failures=[
            ItemFailureResponse(reference=f.reference, reason=f.reason)
            for f in report.failures
        ]
    )
