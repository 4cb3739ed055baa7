"""Bundled compose file with the auxiliary services (jellyseerr, flaresolverr, nginx)."""

from __future__ import annotations

import shutil
from pathlib import Path

import yaml

from ..config import MediactlConfig, get_logger
from ..errors import ConfigError

logger = get_logger(__name__)

BUNDLED_CUSTOM_COMPOSE = Path(__file__).with_name("docker-compose.custom.yaml")


def load_service_names(path: Path) -> list[str]:
    """Names of the services declared in a compose file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not read compose file {path}: {exc}") from exc

    services = data.get("services") if isinstance(data, dict) else None
    if not isinstance(services, dict):
        raise ConfigError(f"Compose file {path} has no services section")
    return list(services)


def install_custom_compose(config: MediactlConfig) -> bool:
    """Copy the bundled custom compose file into the install directory if absent."""
    target = config.install_path / config.orchestrator.custom_compose_file
    if target.exists():
        return False

    services = load_service_names(BUNDLED_CUSTOM_COMPOSE)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(BUNDLED_CUSTOM_COMPOSE, target)
    logger.info(f"Installed {target} with services: {', '.join(services)}")
    return True
