"""Tests for the command line entry point."""

import pytest

from diary_engine.cli import build_parser, main
from diary_engine.config import ConfigLoader

from helpers import add_child, write_photo


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    # Leave pytest's log capture in place
    monkeypatch.setattr("diary_engine.cli.setup_logging", lambda debug=False: None)


@pytest.fixture
def config_file(config, tmp_path):
    return ConfigLoader(tmp_path).save_system_config(config, tmp_path / "system.yaml")


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_backup_and_restore(config_file, config, capsys):
    assert main(["--config", str(config_file), "migrate"]) == 0
    assert main(["--config", str(config_file), "backup"]) == 0
    archive = config.paths.backups / "diary_app_backup.zip"
    assert archive.is_file()
    
    assert main(["--config", str(config_file), "restore", str(archive)]) == 0
    assert "Restart the app" in capsys.readouterr().out
    # Restoring from a picked file leaves the file alone
    assert archive.is_file()


def test_migrate_reports_failures(config_file, config, database, tmp_path, capsys):
    add_child(database, str(tmp_path / "purged.jpg"))
    database.dispose()
    
    assert main(["--config", str(config_file), "migrate"]) == 0
    
    out = capsys.readouterr().out
    assert "Migrated 0 reference(s)" in out
    assert "no longer exists" in out


def test_restore_needs_a_source(config_file):
    assert main(["--config", str(config_file), "restore"]) == 2


def test_restore_bad_archive_fails(config_file, tmp_path, capsys):
    bogus = write_photo(tmp_path / "bogus.zip", b"nope")
    
    assert main(["--config", str(config_file), "restore", str(bogus)]) == 1


def test_bad_config_file(tmp_path):
    broken = tmp_path / "system.yaml"
    broken.write_text("api_port: not-a-number\n")
    
    assert main(["--config", str(broken), "migrate"]) == 1
