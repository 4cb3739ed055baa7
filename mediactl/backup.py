"""Backup of the stack's config directory and compose files."""

from __future__ import annotations

import shutil
import sys
import tarfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import MediactlConfig, get_logger
from .errors import BackupError, MediactlError

logger = get_logger(__name__)

ARCHIVE_PREFIX = "mediactl-backup"
CONFIG_DIRNAME = "config"
EXTRA_FILES = (".env",)
EXECUTABLE_NAME = "mediactl"


def resolve_destination(destination: Optional[str]) -> Path:
    """Absolute backup directory; the current directory when none is given."""
    raw = destination or "."
    try:
        path = Path(raw).expanduser().resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise BackupError(f"Backup destination {raw!r} does not exist") from exc
    if not path.is_dir():
        raise BackupError(f"Backup destination {path} is not a directory")
    return path


def archive_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"{ARCHIVE_PREFIX}-{now.strftime('%Y-%m-%d-%H%M%S')}.tar.gz"


def _exclude_logs(info: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
    if info.isfile() and info.name.endswith(".log"):
        return None
    return info


def backup_members(config: MediactlConfig) -> list[str]:
    """Paths, relative to the install directory, that go into the archive."""
    install_dir = config.install_path
    candidates = [
        CONFIG_DIRNAME,
        config.orchestrator.compose_file,
        config.orchestrator.custom_compose_file,
        *EXTRA_FILES,
    ]
    return [name for name in candidates if (install_dir / name).exists()]


def create_archive(config: MediactlConfig, destination: Path, now: Optional[datetime] = None) -> Path:
    install_dir = config.install_path
    if not install_dir.is_dir():
        raise BackupError(f"Install directory {install_dir} does not exist")

    members = backup_members(config)
    if not members:
        raise BackupError(f"Nothing to back up in {install_dir}")

    archive_path = destination / archive_name(now)
    logger.info(f"Backing up {', '.join(members)} to {archive_path}...")
    try:
        with tarfile.open(archive_path, "w:gz") as tar:
            for name in members:
                tar.add(install_dir / name, arcname=name, filter=_exclude_logs)
    except (OSError, tarfile.TarError) as exc:
        raise BackupError(f"Failed to write {archive_path}: {exc}") from exc
    return archive_path


def copy_executable(destination: Path, executable: Optional[str] = None) -> Optional[Path]:
    """Copy the installed mediactl script next to the archive.

    Only a `mediactl` console script is copied; under `python -m mediactl`
    there is no standalone executable to keep. A failed copy is a warning.
    """
    source = Path(executable or sys.argv[0])
    if source.name != EXECUTABLE_NAME:
        logger.debug(f"Not running from the {EXECUTABLE_NAME} script, skipping copy of {source}")
        return None
    try:
        source = source.resolve(strict=True)
        target = destination / source.name
        if target != source:
            shutil.copy2(source, target)
    except (OSError, RuntimeError) as exc:
        logger.warning(f"Could not copy {source} to {destination}: {exc}")
        return None
    return target


def run_backup(
    config: MediactlConfig,
    destination: Optional[str],
    orchestrator=None,
    now: Optional[datetime] = None,
) -> Path:
    """Stop the stack if an orchestrator is given, archive, then start it again."""
    target_dir = resolve_destination(destination)

    if orchestrator is not None:
        logger.info("Stopping services before backup...")
        orchestrator.stop_all()
    try:
        archive_path = create_archive(config, target_dir, now)
    except BackupError:
        if orchestrator is not None:
            logger.info("Starting services again...")
            try:
                orchestrator.start_all()
            except MediactlError as exc:
                # The backup failure is the error the user sees
                logger.error(f"Could not restart services after failed backup: {exc}")
        raise

    if orchestrator is not None:
        logger.info("Starting services again...")
        orchestrator.start_all()

    copy_executable(target_dir)
    logger.info(f"Backup saved to {archive_path}")
    return archive_path
