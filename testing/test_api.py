"""
Tests for the HTTP API.

Each test runs the app lifespan against a temporary configuration.
"""

import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from diary_engine.api.app import app, app_state
from diary_engine.db.database import DatabaseHandle
from diary_engine.models.diary import Child

from helpers import add_child, write_photo


@pytest.fixture
def client(config, monkeypatch):
    monkeypatch.setitem(app_state, "config", config)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "app_version": "2.0.0", "cloud_enabled": False}


class TestMediaEndpoints:
    """Store and resolve."""
    
    def test_store_then_resolve(self, client):
        response = client.post(
            "/media/images",
            files={"file": ("IMG_1.JPG", b"photo-bytes", "image/jpeg")}
        )
        assert response.status_code == 200
        reference = response.json()["reference"]
        assert reference.startswith("images/") and reference.endswith(".jpg")
        
        resolved = client.get("/media/resolve", params={"ref": reference})
        assert resolved.status_code == 200
        assert resolved.content == b"photo-bytes"
    
    def test_unknown_bucket(self, client):
        response = client.post("/media/videos", files={"file": ("a.jpg", b"x", "image/jpeg")})
        assert response.status_code == 400
    
    def test_resolve_missing(self, client):
        response = client.get("/media/resolve", params={"ref": "images/none.jpg"})
        assert response.status_code == 404


class TestBackupEndpoints:
    """Backup and restore over HTTP."""
    
    def test_backup_download(self, client):
        response = client.post("/backup")
        
        assert response.status_code == 200
        assert response.headers["x-media-count"] == "0"
        with zipfile.ZipFile(io.BytesIO(response.content)) as zipf:
            assert "diaryapp.db" in zipf.namelist()
    
    def test_cloud_backup_unavailable(self, client):
        assert client.post("/backup/cloud").status_code == 503
        assert client.post("/restore/cloud").status_code == 503
    
    def test_restore_round_trip(self, client):
        archive = client.post("/backup").content
        
        response = client.post(
            "/restore",
            files={"file": ("diary_app_backup.zip", archive, "application/zip")}
        )
        
        assert response.status_code == 200
        body = response.json()
        assert body["database_restored"] is True
        assert body["restart_required"] is True
        assert body["failures"] == []
    
    def test_restore_rejects_non_zip_name(self, client):
        response = client.post("/restore", files={"file": ("backup.txt", b"x", "text/plain")})
        assert response.status_code == 400
    
    def test_restore_rejects_broken_archive(self, client):
        response = client.post("/restore", files={"file": ("backup.zip", b"not a zip", "application/zip")})
        assert response.status_code == 400


class TestMigrationEndpoint:
    """Migration runs at startup; the endpoint reruns it."""
    
    def test_already_done_at_startup(self, client):
        body = client.post("/migrations/run").json()
        assert body["skipped"] is True
        assert body["current_version"] == "2.0.0"
    
    def test_forced_run(self, client):
        body = client.post("/migrations/run", params={"force": True}).json()
        assert body["skipped"] is False
        assert body["migrated_count"] == 0


def test_startup_migrates_legacy_references(config, monkeypatch, tmp_path):
    legacy = write_photo(tmp_path / "picker" / "face.jpg", b"face")
    handle = DatabaseHandle(config.paths.database)
    handle.init_schema()
    child_id = add_child(handle, str(legacy))
    handle.dispose()
    
    monkeypatch.setitem(app_state, "config", config)
    with TestClient(app) as client:
        with app_state["services"].database.session_scope() as db:
            reference = db.get(Child, child_id).photo_url
        assert reference.startswith("profiles/profile_")
        assert client.get("/media/resolve", params={"ref": reference}).content == b"face"


class TestResolveIsLimitedToMedia:
    """Only bucket files, cache files and referenced files are served."""
    
    def test_unreferenced_file_outside_media_roots(self, client, tmp_path):
        secret = write_photo(tmp_path / "elsewhere" / "secret.txt", b"top secret")
        
        response = client.get(
            "/media/resolve",
            params={"ref": str(secret)},
            headers={"Origin": "http://evil.example"}
        )
        
        assert response.status_code == 404
        assert b"top secret" not in response.content
    
    def test_database_file_not_served(self, client):
        response = client.get("/media/resolve", params={"ref": "SQLite/diaryapp.db"})
        assert response.status_code == 404
    
    def test_escape_from_bucket_not_served(self, client):
        response = client.get("/media/resolve", params={"ref": "images/../SQLite/diaryapp.db"})
        assert response.status_code == 404
    
    def test_referenced_legacy_file_is_served(self, client, tmp_path):
        legacy = write_photo(tmp_path / "photos" / "old.jpg", b"old photo")
        add_child(app_state["services"].database, str(legacy))
        
        response = client.get("/media/resolve", params={"ref": str(legacy)})
        
        assert response.status_code == 200
        assert response.content == b"old photo"
    
    def test_cache_file_is_served(self, client, config):
        write_photo(config.paths.cache / "ImagePicker" / "c.jpg", b"cached")
        
        response = client.get("/media/resolve", params={"ref": "ImagePicker/c.jpg"})
        
        assert response.status_code == 200
        assert response.content == b"cached"


def test_backup_download_removes_archive(client, config):
    response = client.post("/backup")
    
    assert response.status_code == 200
    assert not (config.paths.backups / "diary_app_backup.zip").exists()
