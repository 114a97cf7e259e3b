"""
Bounded parallel file copying for backup and restore.

Copies run on a small thread pool; every job is waited for before results are
returned, so callers see one outcome per job and never a half-finished batch.
"""

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class CopySourceError(Exception):
    """The source file could not be opened (vanished, unreadable)."""
    pass


@dataclass(frozen=True)
class CopyJob:
    """Copy ``source`` to ``destination`` on behalf of ``reference``."""
    reference: str
    source: Path
    destination: Path


@dataclass(frozen=True)
class ItemFailure:
    """A single item a multi-item operation skipped."""
    reference: str
    reason: str


@dataclass(frozen=True)
class CopyOutcome:
    job: CopyJob
    error: Optional[BaseException] = None
    
    @property
    def ok(self) -> bool:
        return self.error is None
    
    @property
    def source_failed(self) -> bool:
        return isinstance(self.error, CopySourceError)
    
    def as_failure(self) -> ItemFailure:
        return ItemFailure(reference=self.job.reference, reason=str(self.error))


def copy_file(source: Path, destination: Path) -> None:
    """
    Copy one file, separating source errors from destination errors.
    
    Raises:
        CopySourceError: The source could not be opened
        OSError: Creating or writing the destination failed
    """
    try:
        src = open(source, 'rb')
    except OSError as e:
        raise CopySourceError(f"Cannot read {source}: {e}") from e
    
    with src:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with open(destination, 'wb') as dst:
            shutil.copyfileobj(src, dst)
    
    try:
        shutil.copystat(source, destination)
    except OSError as e:
        logger.debug(f"Could not copy file metadata {source} -> {destination}: {e}")


def _run_job(job: CopyJob) -> CopyOutcome:
    try:
        copy_file(job.source, job.destination)
        return CopyOutcome(job=job)
    except (CopySourceError, OSError) as e:
        return CopyOutcome(job=job, error=e)


def run_copy_jobs(jobs: Iterable[CopyJob], max_workers: int = 4) -> List[CopyOutcome]:
    """
    Run copy jobs on a bounded pool.
    
    Args:
        jobs: Copies to perform (destinations must be distinct)
        max_workers: Upper bound on concurrent copies
    
    Returns:
        One outcome per job, in job order
    """
    jobs = list(jobs)
    if not jobs:
        return []
    
    workers = max(1, min(max_workers, len(jobs)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="media-copy") as executor:
        outcomes = list(executor.map(_run_job, jobs))
    
    failed = sum(1 for outcome in outcomes if not outcome.ok)
    logger.debug(f"Copied {len(outcomes) - failed}/{len(outcomes)} file(s) with {workers} worker(s)")
    return outcomes
