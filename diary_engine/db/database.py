"""Database configuration and session management."""

import os
import threading
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

SQLITE_BUSY_TIMEOUT_SECONDS = 30

# SQLite keeps uncommitted/un-checkpointed pages in these next to the main file
SQLITE_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


class DatabaseHandle:
    """
    Explicit handle on the diary database file.
    
    Every service receives the handle it works against instead of reaching for
    a process-wide connection, so tests can point each subsystem at a
    throwaway database file.
    
    The handle also owns the single-writer lock: ``session_scope()`` holds it
    for ordinary work and ``exclusive()`` holds it for the full length of a
    backup or restore. The lock is re-entrant so a backup can open sessions
    while holding it.
    """
    
    def __init__(
        self,
        database_path: Path,
        busy_timeout: int = SQLITE_BUSY_TIMEOUT_SECONDS,
        echo: bool = False
    ):
        """
        Initialize database handle.
        
        Args:
            database_path: Location of the SQLite file
            busy_timeout: Seconds SQLite waits on a locked database
            echo: Log emitted SQL (debugging only)
        """
        self.database_path = Path(database_path)
        self.busy_timeout = busy_timeout
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._lock = threading.RLock()
    
    @property
    def url(self) -> str:
        return f"sqlite:///{self.database_path}"
    
    @property
    def engine(self) -> Engine:
        """Engine bound to the current database file, created on first use."""
        with self._lock:
            if self._engine is None:
                self.database_path.parent.mkdir(parents=True, exist_ok=True)
                self._engine = create_engine(
                    self.url,
                    connect_args={
                        "check_same_thread": False,  # Needed for SQLite
                        "timeout": self.busy_timeout
                    },
                    echo=self.echo
                )
                self._session_factory = sessionmaker(
                    autocommit=False, autoflush=False, bind=self._engine
                )
                logger.debug(f"Opened database engine: {self.url}")
            return self._engine
    
    def init_schema(self) -> None:
        """
        Create missing tables and switch the file to WAL mode.
        
        Safe to call on an existing (or freshly restored) database; existing
        tables and rows are left untouched.
        """
        # Import models so they're registered with Base
        from diary_engine.models import diary  # noqa: F401
        
        with self._lock:
            Base.metadata.create_all(bind=self.engine)
            with self.engine.connect() as conn:
                conn.execute(text("PRAGMA journal_mode=WAL"))
                conn.execute(text("PRAGMA synchronous=NORMAL"))
                conn.commit()
        
        logger.info(
            "Database initialized: path=%s pid=%s timeout=%ss",
            self.database_path,
            os.getpid(),
            self.busy_timeout
        )
    
    @property
    def session_factory(self) -> sessionmaker:
        with self._lock:
            self.engine  # also builds the session factory
            return self._session_factory
    
    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Open a session while holding the writer lock.
        
        Callers commit explicitly; the session is always closed on exit.
        """
        with self._lock:
            session = self.session_factory()
            try:
                yield session
            finally:
                session.close()
    
    def get_db(self) -> Iterator[Session]:
        """
        Get a database session.
        
        Usage in FastAPI endpoints:
            @app.get("/endpoint")
            def endpoint(db: Session = Depends(handle.get_db)):
                pass
        """
        with self.session_scope() as session:
            yield session
    
    @contextmanager
    def exclusive(self) -> Iterator["DatabaseHandle"]:
        """Hold the writer lock for the duration of a backup or restore."""
        with self._lock:
            yield self
    
    def checkpoint(self) -> None:
        """Fold the WAL back into the main file so a plain file copy is complete."""
        with self._lock:
            if not self.database_path.exists():
                return
            # Pooled connections can still hold a table lock that blocks the checkpoint
            self.dispose()
            with self.engine.connect() as conn:
                conn.execute(text("PRAGMA wal_checkpoint(TRUNCATE)"))
                conn.commit()
    
    def dispose(self) -> None:
        """Close pooled connections; the next use reopens the file."""
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
                logger.debug(f"Disposed database engine: {self.url}")
            self._engine = None
            self._session_factory = None
    
    def sidecar_paths(self) -> list[Path]:
        """Journal files SQLite may keep next to the main database file."""
        return [
            self.database_path.with_name(self.database_path.name + suffix)
            for suffix in SQLITE_SIDECAR_SUFFIXES
        ]
