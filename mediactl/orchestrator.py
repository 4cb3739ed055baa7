"""docker compose wrapper used by every mediactl command."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from .config import MediactlConfig, get_logger
from .errors import CommandError

logger = get_logger(__name__)


def run_command(
    command: list[str],
    check: bool = True,
    timeout: Optional[float] = None,
    cwd: Optional[Path] = None,
    env: Optional[dict[str, str]] = None,
) -> subprocess.CompletedProcess[str]:
    logger.debug(f"Running: {' '.join(command)}")
    try:
        result = subprocess.run(
            command, capture_output=True, text=True, timeout=timeout, cwd=cwd, env=env
        )
    except subprocess.TimeoutExpired as exc:
        raise CommandError(
            f"Command timed out after {timeout}s: {' '.join(command)}"
        ) from exc
    except FileNotFoundError as exc:
        raise CommandError(f"Command not found: {command[0]}") from exc

    if check and result.returncode != 0:
        raise CommandError(
            f"Command failed: {' '.join(command)}\n"
            f"stdout: {result.stdout.strip()}\n"
            f"stderr: {result.stderr.strip()}"
        )
    return result


def ensure_docker_available() -> None:
    if shutil.which("docker") is None:
        raise CommandError("Docker is not installed or not available in PATH.")


def container_running(name: str) -> bool:
    result = run_command(
        ["docker", "inspect", "--format", "{{.State.Running}}", name], check=False
    )
    return result.returncode == 0 and result.stdout.strip() == "true"


class ComposeOrchestrator:
    """Runs docker compose against the stack's compose files."""

    def __init__(self, config: MediactlConfig):
        self.install_dir = config.install_path
        self.compose_file = self.install_dir / config.orchestrator.compose_file
        self.custom_compose_file = (
            self.install_dir / config.orchestrator.custom_compose_file
        )
        self.timeout = config.orchestrator.command_timeout
        self.media_service = config.install.media_service

    def compose_command(self, *args: str) -> list[str]:
        command = ["docker", "compose", "-f", str(self.compose_file)]
        if self.custom_compose_file.exists():
            command.extend(["-f", str(self.custom_compose_file)])
        command.extend(["--project-directory", str(self.install_dir)])
        command.extend(args)
        return command

    def compose_env(self) -> dict[str, str]:
        """Variables the compose files interpolate."""
        env = os.environ.copy()
        env["INSTALL_DIRECTORY"] = str(self.install_dir)
        env["MEDIA_SERVICE"] = self.media_service
        return env

    def _compose(self, *args: str) -> subprocess.CompletedProcess[str]:
        return run_command(
            self.compose_command(*args),
            timeout=self.timeout,
            cwd=self.install_dir,
            env=self.compose_env(),
        )

    def list_services(self, status: Optional[str] = None) -> list[str]:
        """Service names, optionally only those whose containers are in `status`."""
        if status is None:
            result = self._compose("ps", "--all", "--services")
        else:
            result = self._compose("ps", "--services", "--filter", f"status={status}")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def stop_all(self) -> None:
        self._compose("stop")

    def start_all(self) -> None:
        self._compose("up", "-d")

    def teardown_all(self) -> None:
        self._compose("down")

    def exec_in(
        self, container: str, command: list[str], timeout: Optional[float] = None
    ) -> subprocess.CompletedProcess[str]:
        """Run `command` inside `container` without raising on non-zero exit."""
        return run_command(
            ["docker", "exec", container, *command], check=False, timeout=timeout
        )
