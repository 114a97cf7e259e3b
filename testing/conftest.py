"""Shared fixtures: every test gets its own storage roots and SQLite file."""

import pytest

from diary_engine.config import SystemConfig
from diary_engine.config.models import PathsConfig
from diary_engine.db.database import DatabaseHandle
from diary_engine.services.media_store import MediaStore
from diary_engine.services.path_resolver import PathResolver


@pytest.fixture
def config(tmp_path) -> SystemConfig:
    """System config with every path under the test's temp directory."""
    return SystemConfig(
        app_version="2.0.0",
        paths=PathsConfig(
            documents=tmp_path / "documents",
            cache=tmp_path / "cache",
            database=tmp_path / "documents" / "SQLite" / "diaryapp.db",
            staging=tmp_path / "staging",
            backups=tmp_path / "backups",
            exports=tmp_path / "exports",
        ),
    )


@pytest.fixture
def database(config):
    handle = DatabaseHandle(config.paths.database)
    handle.init_schema()
    yield handle
    handle.dispose()


@pytest.fixture
def resolver(config) -> PathResolver:
    return PathResolver(documents_root=config.paths.documents, cache_root=config.paths.cache)


@pytest.fixture
def media_store(config) -> MediaStore:
    store = MediaStore(config.paths.documents)
    store.initialize_directories()
    return store


@pytest.fixture
def services(config):
    """Full service graph with startup already run."""
    from diary_engine.services.startup import build_services, run_startup
    
    graph = build_services(config)
    run_startup(graph)
    yield graph
    graph.close()
