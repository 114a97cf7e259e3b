"""
Tests for configuration loading.

Tests cover:
- Defaults when config/system.yaml is absent
- YAML values overriding defaults
- Readable validation errors
"""

from pathlib import Path

import pytest

from diary_engine import __version__
from diary_engine.config import ConfigLoader, ConfigLoadError, ConfigValidationError, SystemConfig


def write_config(tmp_path, text):
    path = tmp_path / "config" / "system.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestConfigLoader:
    """Test suite for ConfigLoader.load_system_config."""
    
    def test_defaults_when_missing(self, tmp_path):
        config = ConfigLoader(tmp_path).load_system_config()
        
        assert config.app_version == __version__
        assert config.backup.archive_name == "diary_app_backup.zip"
        assert config.backup.manifest_name == "image_mapping.json"
        assert config.paths.database == Path("data/documents/SQLite/diaryapp.db")
        assert config.cloud.enabled is False
        assert config.media.sweep_orphans_on_startup is False
    
    def test_yaml_overrides(self, tmp_path):
        write_config(tmp_path, """
debug: true
paths:
  documents: /srv/diary/documents
backup:
  copy_workers: 8
cloud:
  enabled: true
  base_url: https://dav.example.com/backups/
  token: abc
""")
        config = ConfigLoader(tmp_path).load_system_config()
        
        assert config.debug is True
        assert config.paths.documents == Path("/srv/diary/documents")
        assert config.paths.cache == Path("data/cache")
        assert config.backup.copy_workers == 8
        assert config.cloud.base_url == "https://dav.example.com/backups"
        assert config.cloud.token == "abc"
    
    def test_empty_file_gives_defaults(self, tmp_path):
        write_config(tmp_path, "")
        assert ConfigLoader(tmp_path).load_system_config() == SystemConfig()
    
    def test_validation_errors_are_listed(self, tmp_path):
        path = write_config(tmp_path, """
backup:
  archive_name: backups/diary.tar
  copy_workers: 0
""")
        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigLoader(tmp_path).load_system_config()
        
        message = str(exc_info.value)
        assert str(path) in message
        assert "backup → archive_name" in message
        assert "backup → copy_workers" in message
    
    def test_bad_cloud_url(self, tmp_path):
        write_config(tmp_path, "cloud:\n  base_url: ftp://example.com\n")
        with pytest.raises(ConfigValidationError):
            ConfigLoader(tmp_path).load_system_config()
    
    def test_invalid_yaml(self, tmp_path):
        write_config(tmp_path, "paths: [unclosed\n")
        with pytest.raises(ConfigLoadError, match="Invalid YAML"):
            ConfigLoader(tmp_path).load_system_config()
    
    def test_top_level_must_be_mapping(self, tmp_path):
        write_config(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigLoadError):
            ConfigLoader(tmp_path).load_system_config()


def test_save_then_load(tmp_path):
    loader = ConfigLoader(tmp_path)
    config = SystemConfig(debug=True, api_port=9000)
    
    saved = loader.save_system_config(config)
    
    assert saved == tmp_path / "config" / "system.yaml"
    assert loader.load_system_config() == config
