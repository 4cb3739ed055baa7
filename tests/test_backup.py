"""Tests for stack backups."""

from __future__ import annotations

import logging
import tarfile
from datetime import datetime

import pytest

from mediactl import backup as backup_module
from mediactl.backup import (
    archive_name,
    backup_members,
    copy_executable,
    create_archive,
    resolve_destination,
    run_backup,
)
from mediactl.config import ConfigManager
from mediactl.errors import BackupError, CommandError

from conftest import FakeOrchestrator

NOW = datetime(2024, 1, 2, 3, 4, 5)


class BrokenStartOrchestrator(FakeOrchestrator):
    def start_all(self) -> None:
        raise CommandError("Command failed: docker compose up -d")


@pytest.fixture
def config(install_dir):
    return ConfigManager(install_dir=install_dir).get_config()


@pytest.fixture
def destination(tmp_path):
    path = tmp_path / "backups"
    path.mkdir()
    return path


@pytest.fixture
def no_executable_copy(monkeypatch):
    monkeypatch.setattr(backup_module, "copy_executable", lambda destination: None)


class TestResolveDestination:
    def test_defaults_to_current_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert resolve_destination(None) == tmp_path.resolve()

    def test_missing_directory_is_fatal(self, tmp_path):
        with pytest.raises(BackupError, match="does not exist"):
            resolve_destination(str(tmp_path / "nowhere"))

    def test_file_is_fatal(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")

        with pytest.raises(BackupError, match="not a directory"):
            resolve_destination(str(target))


class TestArchive:
    def test_archive_name_is_dated(self):
        assert archive_name(NOW) == "mediactl-backup-2024-01-02-030405.tar.gz"

    def test_members_are_the_ones_present(self, config, install_dir):
        assert backup_members(config) == ["config", "docker-compose.yaml"]

        (install_dir / ".env").write_text("TZ=UTC\n")
        (install_dir / "docker-compose.custom.yaml").write_text("services: {}\n")

        assert backup_members(config) == [
            "config",
            "docker-compose.yaml",
            "docker-compose.custom.yaml",
            ".env",
        ]

    def test_archive_contents_skip_logs(self, config, destination):
        archive = create_archive(config, destination, NOW)

        assert archive == destination / "mediactl-backup-2024-01-02-030405.tar.gz"
        with tarfile.open(archive) as tar:
            names = tar.getnames()
        assert "docker-compose.yaml" in names
        assert "config/jellyfin/system.xml" in names
        assert "config/jellyfin/jellyfin.log" not in names

    def test_missing_install_dir(self, tmp_path, destination):
        config = ConfigManager(install_dir=tmp_path / "gone").get_config()

        with pytest.raises(BackupError, match="does not exist"):
            create_archive(config, destination)

    def test_empty_install_dir(self, tmp_path, destination):
        empty = tmp_path / "empty"
        empty.mkdir()
        config = ConfigManager(install_dir=empty).get_config()

        with pytest.raises(BackupError, match="Nothing to back up"):
            create_archive(config, destination)


class TestCopyExecutable:
    def test_copies_next_to_archive(self, tmp_path, destination):
        script = tmp_path / "mediactl"
        script.write_text("#!/bin/sh\n")

        assert copy_executable(destination, str(script)) == destination / "mediactl"
        assert (destination / "mediactl").read_text() == "#!/bin/sh\n"

    def test_failure_is_a_warning(self, tmp_path, destination, caplog):
        caplog.set_level(logging.WARNING, logger="mediactl.backup")

        assert copy_executable(destination, str(tmp_path / "bin" / "mediactl")) is None
        assert "Could not copy" in caplog.text

    def test_module_entry_point_is_not_copied(self, tmp_path, destination):
        entry = tmp_path / "__main__.py"
        entry.write_text("from .cli import main\n")

        assert copy_executable(destination, str(entry)) is None
        assert list(destination.iterdir()) == []


class TestRunBackup:
    """Stop, archive, start."""

    def test_stops_and_restarts_services(self, config, destination, no_executable_copy):
        orchestrator = FakeOrchestrator()

        archive = run_backup(config, str(destination), orchestrator, NOW)

        assert archive.exists()
        assert orchestrator.calls == ["stop", "start"]

    def test_restarts_even_when_archive_fails(self, tmp_path, destination, no_executable_copy):
        config = ConfigManager(install_dir=tmp_path / "gone").get_config()
        orchestrator = FakeOrchestrator()

        with pytest.raises(BackupError):
            run_backup(config, str(destination), orchestrator, NOW)

        assert orchestrator.calls == ["stop", "start"]

    def test_without_orchestrator_leaves_services_alone(self, config, destination, no_executable_copy):
        assert run_backup(config, str(destination), None, NOW).exists()

    def test_bad_destination_touches_nothing(self, config, tmp_path):
        orchestrator = FakeOrchestrator()

        with pytest.raises(BackupError):
            run_backup(config, str(tmp_path / "nowhere"), orchestrator, NOW)

        assert orchestrator.calls == []

    def test_restart_failure_does_not_hide_backup_error(self, tmp_path, destination, caplog, no_executable_copy):
        caplog.set_level(logging.ERROR, logger="mediactl.backup")
        config = ConfigManager(install_dir=tmp_path / "gone").get_config()
        orchestrator = BrokenStartOrchestrator()

        with pytest.raises(BackupError, match="does not exist"):
            run_backup(config, str(destination), orchestrator, NOW)

        assert orchestrator.calls == ["stop"]
        assert "Could not restart services" in caplog.text
