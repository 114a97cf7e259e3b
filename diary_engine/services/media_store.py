"""
Media storage service for photo files.

Copies picked/captured photo bytes into durable bucket directories and hands
back the canonical reference the database stores.
"""

import logging
import os
import random
import shutil
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from diary_engine.services.media_reference import (
    Bucket,
    CanonicalReference,
    InvalidReferenceError,
    canonical_reference,
    parse_reference,
)

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".jpg"
GENERATED_NAME_ATTEMPTS = 10


class MediaStoreError(Exception):
    """Raised when photo bytes cannot be written to durable storage."""
    pass


def generate_filename(suffix: str = DEFAULT_SUFFIX) -> str:
    """Collision-resistant filename: epoch milliseconds plus a random suffix."""
    return f"{int(time.time() * 1000)}_{random.randint(0, 9999):04d}{suffix or DEFAULT_SUFFIX}"


class MediaStore:
    """
    Service for storing photo files in the durable bucket layout.
    
    Handles:
    - Bucket directory initialization
    - Copying source files into ``<documents_root>/<bucket>/<filename>``
    - Mapping canonical references back to file paths
    - Sweeping stored files no database row references
    """
    
    def __init__(self, documents_root: Path):
        """
        Initialize media store.
        
        Args:
            documents_root: Durable app storage root
        """
        self.documents_root = Path(documents_root)
    
    def bucket_dir(self, bucket: Union[Bucket, str]) -> Path:
        return self.documents_root / Bucket(bucket).value
    
    def initialize_directories(self) -> bool:
        """
        Ensure both bucket directories exist.
        
        Idempotent. A creation failure is logged and otherwise ignored because
        ``store()`` creates the bucket again on demand.
        
        Returns:
            True if every bucket directory exists afterwards
        """
        ok = True
        for bucket in Bucket:
            directory = self.bucket_dir(bucket)
            try:
                if not directory.is_dir():
                    directory.mkdir(parents=True, exist_ok=True)
                    logger.info(f"Created media bucket: {directory}")
            except OSError as e:
                logger.error(f"Error initializing media directory {directory}: {e}")
                ok = False
        return ok
    
    def store(
        self,
        source: Path,
        bucket: Union[Bucket, str],
        filename: Optional[str] = None
    ) -> str:
        """
        Copy a photo into durable storage.
        
        Args:
            source: File to copy (e.g. the picker's temporary file)
            bucket: Destination bucket
            filename: Destination filename; generated when omitted
        
        Returns:
            Canonical reference ``<bucket>/<filename>``
        
        Raises:
            MediaStoreError: The copy failed. Callers must not persist a
                reference for a failed store.
        """
        source = Path(source)
        try:
            bucket = Bucket(bucket)
            final_name = filename or generate_filename(source.suffix.lower())
            ref = canonical_reference(bucket, final_name)
        except (ValueError, InvalidReferenceError) as e:
            raise MediaStoreError(f"Invalid store target: {e}") from e
        
        dest_dir = self.bucket_dir(bucket)
        dest_path = dest_dir / ref.filename
        if not filename:
            # A generated name must never replace another row's photo
            attempts = 1
            while dest_path.exists():
                if attempts >= GENERATED_NAME_ATTEMPTS:
                    raise MediaStoreError(f"Could not find a free filename in {dest_dir}")
                ref = canonical_reference(bucket, generate_filename(source.suffix.lower()))
                dest_path = dest_dir / ref.filename
                attempts += 1
        # Written under a hidden name first so dest_path is never half-copied
        partial_path = dest_dir / f".{ref.filename}.partial"
        
        try:
            if not dest_dir.is_dir():
                dest_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, partial_path)
            os.replace(partial_path, dest_path)
        except OSError as e:
            logger.error(f"Error saving image {source} -> {dest_path}: {e}")
            self._discard_partial(partial_path)
            raise MediaStoreError(f"Failed to store {source}: {e}") from e
        
        logger.debug(f"Stored media {source} as {ref}")
        return ref.raw
    
    def path_for(self, ref: Union[str, CanonicalReference]) -> Path:
        """
        Physical path of a canonical reference (whether or not it exists).
        
        Raises:
            InvalidReferenceError: If ``ref`` is not canonical
        """
        parsed = ref if isinstance(ref, CanonicalReference) else parse_reference(ref)
        if not isinstance(parsed, CanonicalReference):
            raise InvalidReferenceError(f"Not a canonical reference: {ref}")
        return self.bucket_dir(parsed.bucket) / parsed.filename
    
    def list_stored(self) -> Dict[str, Path]:
        """All stored files keyed by canonical reference."""
        stored = {}
        for bucket in Bucket:
            directory = self.bucket_dir(bucket)
            if not directory.is_dir():
                continue
            for file_path in directory.iterdir():
                if file_path.is_file() and not file_path.name.startswith("."):
                    stored[f"{bucket.value}/{file_path.name}"] = file_path
        return stored
    
    def sweep_orphans(self, referenced: Iterable[str], grace_seconds: int = 3600) -> List[str]:
        """
        Delete stored files that no live reference points to.
        
        Files modified within ``grace_seconds`` are kept: a photo is stored
        before the row that references it is saved.
        
        Args:
            referenced: Every reference currently held by the database
            grace_seconds: Minimum age of a file before it can be removed
        
        Returns:
            Canonical references of the deleted files
        """
        live = set(referenced)
        cutoff = time.time() - grace_seconds
        removed = []
        
        for ref, file_path in self.list_stored().items():
            if ref in live:
                continue
            try:
                if file_path.stat().st_mtime > cutoff:
                    continue
                file_path.unlink()
                removed.append(ref)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Could not remove orphaned media {file_path}: {e}")
        
        if removed:
            logger.info(f"Swept {len(removed)} orphaned media file(s)")
        return removed
    
    @staticmethod
    def _discard_partial(dest_path: Path) -> None:
        try:
            dest_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial file {dest_path}: {e}")
