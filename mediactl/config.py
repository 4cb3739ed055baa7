"""
Configuration and constants for mediactl.
Defaults come from dataclasses, then an optional YAML file, then the environment.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .errors import ConfigError


DEFAULT_IP_ENDPOINTS: Tuple[str, ...] = (
    "https://ipinfo.io/ip",
    "https://api.ipify.org",
    "https://checkip.amazonaws.com",
    "https://icanhazip.com",
    "https://ifconfig.me/ip",
)

DEFAULT_COUNTRY_ENDPOINT = "https://ipinfo.io/country"

CONFIG_FILENAME = "mediactl.yaml"
CONFIG_PATH_ENV = "MEDIACTL_CONFIG"

COMMAND_DESCRIPTIONS = MappingProxyType(
    {
        "--help": "displays this help message",
        "start": "starts your media stack",
        "stop": "stops your media stack",
        "restart": "restarts your media stack",
        "destroy": "destroy your media stack containers (config is kept)",
        "check-vpn": "checks that the VPN container is not leaking your IP",
        "backup": "backs up your stack config to a destination directory",
    }
)


class LogLevel(Enum):
    """Supported logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class InstallConfig:
    """Where the stack lives on disk."""
    directory: str = "/opt/mediactl"
    media_service: str = "jellyfin"


@dataclass
class OrchestratorConfig:
    """docker compose settings."""
    compose_file: str = "docker-compose.yaml"
    custom_compose_file: str = "docker-compose.custom.yaml"
    command_timeout: int = 120


@dataclass
class ReadinessConfig:
    """Readiness polling budget, measured in ticks of `interval` seconds."""
    timeout: int = 60
    interval: float = 1.0
    progress_every: int = 10


@dataclass
class VpnConfig:
    """Egress IP verification settings."""
    container: str = "qbittorrent"
    ip_endpoints: Tuple[str, ...] = DEFAULT_IP_ENDPOINTS
    country_endpoint: str = DEFAULT_COUNTRY_ENDPOINT
    probe_timeout: int = 5


@dataclass
class MediactlConfig:
    """Complete mediactl configuration."""
    log_level: LogLevel = LogLevel.INFO
    log_format: str = "%(asctime)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None

    install: InstallConfig = field(default_factory=InstallConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    readiness: ReadinessConfig = field(default_factory=ReadinessConfig)
    vpn: VpnConfig = field(default_factory=VpnConfig)

    @property
    def install_path(self) -> Path:
        return Path(self.install.directory).expanduser()


class ConfigManager:
    """Configuration manager with YAML support and validation."""

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        install_dir: Optional[Union[str, Path]] = None,
    ):
        self.config_path = Path(config_path) if config_path else None
        self.install_dir = str(install_dir) if install_dir else None
        self.config = MediactlConfig()
        self._errors: list = []
        self._load_config()
        self._validate_config()

    def _load_config(self):
        """Load configuration from various sources with precedence."""
        # INSTALL_DIRECTORY decides where the default YAML file lives
        if os.getenv("INSTALL_DIRECTORY"):
            self.config.install.directory = os.getenv("INSTALL_DIRECTORY")
        if self.install_dir:
            self.config.install.directory = self.install_dir

        path = self._resolve_config_path()
        if path is not None:
            self.config_path = path
            self._load_yaml_config()

        self._load_env_config()
        if self.install_dir:
            self.config.install.directory = self.install_dir

    def _resolve_config_path(self) -> Optional[Path]:
        if self.config_path is not None:
            if not self.config_path.exists():
                raise ConfigError(f"Config file not found: {self.config_path}")
            return self.config_path

        env_path = os.getenv(CONFIG_PATH_ENV)
        if env_path:
            path = Path(env_path).expanduser()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        default_path = self.config.install_path / CONFIG_FILENAME
        if default_path.exists():
            return default_path
        return None

    def _load_yaml_config(self):
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {self.config_path}: {e}") from e

        if not yaml_data:
            return
        if not isinstance(yaml_data, dict):
            raise ConfigError(f"Config file {self.config_path} must contain a mapping")

        self._update_config_from_dict(yaml_data)
        logging.getLogger(__name__).debug(f"Loaded config from {self.config_path}")

    def _update_config_from_dict(self, data: Dict[str, Any]):
        """Update configuration from dictionary data."""
        install_data = self._section(data, "install")
        if "directory" in install_data:
            self.config.install.directory = str(install_data["directory"])
        if "media_service" in install_data:
            self.config.install.media_service = str(install_data["media_service"])

        orch_data = self._section(data, "orchestrator")
        if "compose_file" in orch_data:
            self._set_str(self.config.orchestrator, "compose_file", orch_data, "orchestrator")
        if "custom_compose_file" in orch_data:
            self._set_str(self.config.orchestrator, "custom_compose_file", orch_data, "orchestrator")
        if "command_timeout" in orch_data:
            self._set_number(self.config.orchestrator, "command_timeout", orch_data, "orchestrator", int)

        ready_data = self._section(data, "readiness")
        if "timeout" in ready_data:
            self._set_number(self.config.readiness, "timeout", ready_data, "readiness", int)
        if "interval" in ready_data:
            self._set_number(self.config.readiness, "interval", ready_data, "readiness", float)
        if "progress_every" in ready_data:
            self._set_number(self.config.readiness, "progress_every", ready_data, "readiness", int)

        vpn_data = self._section(data, "vpn")
        if "container" in vpn_data:
            self._set_str(self.config.vpn, "container", vpn_data, "vpn")
        if "ip_endpoints" in vpn_data:
            endpoints = vpn_data["ip_endpoints"]
            if isinstance(endpoints, str):
                endpoints = [endpoints]
            if endpoints is None:
                self.config.vpn.ip_endpoints = ()
            elif isinstance(endpoints, list) and all(isinstance(e, str) for e in endpoints):
                self.config.vpn.ip_endpoints = tuple(endpoints)
            else:
                self._errors.append(f"vpn.ip_endpoints must be a list of URLs, got {endpoints!r}")
        if "country_endpoint" in vpn_data:
            self._set_str(self.config.vpn, "country_endpoint", vpn_data, "vpn")
        if "probe_timeout" in vpn_data:
            self._set_number(self.config.vpn, "probe_timeout", vpn_data, "vpn", int)

        log_data = self._section(data, "logging")
        if "level" in log_data:
            try:
                self.config.log_level = LogLevel(str(log_data["level"]).upper())
            except ValueError as e:
                raise ConfigError(f"Invalid log level: {log_data['level']}") from e
        if "format" in log_data:
            self._set_str(self.config, "log_format", log_data, "logging", key="format")
        if "file" in log_data:
            self.config.log_file = None if log_data["file"] is None else str(log_data["file"])

    def _section(self, data: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = data.get(name)
        if section is None:
            return {}
        if not isinstance(section, dict):
            self._errors.append(f"Section '{name}' must be a mapping, got {section!r}")
            return {}
        return section

    def _set_str(self, target, attr: str, section: Dict[str, Any], name: str, key: Optional[str] = None):
        key = key or attr
        value = section[key]
        if not isinstance(value, str):
            self._errors.append(f"{name}.{key} must be a string, got {value!r}")
            return
        setattr(target, attr, value)

    def _set_number(self, target, attr: str, section: Dict[str, Any], name: str, kind: type):
        value = section[attr]
        # bool is an int subclass; YAML `yes` must not become 1
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            self._errors.append(f"{name}.{attr} must be a number, got {value!r}")
            return
        if kind is int and value != int(value):
            self._errors.append(f"{name}.{attr} must be a whole number, got {value!r}")
            return
        setattr(target, attr, kind(value))

    def _load_env_config(self):
        """Load configuration from environment variables."""
        logger = logging.getLogger(__name__)

        if os.getenv("INSTALL_DIRECTORY"):
            self.config.install.directory = os.getenv("INSTALL_DIRECTORY")

        if os.getenv("MEDIA_SERVICE"):
            self.config.install.media_service = os.getenv("MEDIA_SERVICE")

        if os.getenv("MEDIACTL_VPN_CONTAINER"):
            self.config.vpn.container = os.getenv("MEDIACTL_VPN_CONTAINER")

        if os.getenv("MEDIACTL_PROBE_TIMEOUT"):
            try:
                self.config.vpn.probe_timeout = int(os.getenv("MEDIACTL_PROBE_TIMEOUT"))
            except ValueError:
                logger.warning("Ignoring non-integer MEDIACTL_PROBE_TIMEOUT")

        if os.getenv("MEDIACTL_READINESS_TIMEOUT"):
            try:
                self.config.readiness.timeout = int(os.getenv("MEDIACTL_READINESS_TIMEOUT"))
            except ValueError:
                logger.warning("Ignoring non-integer MEDIACTL_READINESS_TIMEOUT")

        if os.getenv("LOG_LEVEL"):
            try:
                self.config.log_level = LogLevel(os.getenv("LOG_LEVEL").upper())
            except ValueError:
                logger.warning(f"Ignoring unknown LOG_LEVEL {os.getenv('LOG_LEVEL')!r}")

        if os.getenv("LOG_FILE"):
            self.config.log_file = os.getenv("LOG_FILE")

    def _validate_config(self):
        """Validate configuration values."""
        errors = list(self._errors)

        if not self.config.install.directory:
            errors.append("Install directory cannot be empty")

        if self.config.readiness.timeout < 1:
            errors.append(f"Invalid readiness timeout: {self.config.readiness.timeout}")

        if self.config.readiness.interval < 0:
            errors.append(f"Invalid readiness interval: {self.config.readiness.interval}")

        if self.config.readiness.progress_every < 1:
            errors.append(f"Invalid progress interval: {self.config.readiness.progress_every}")

        if self.config.vpn.probe_timeout < 1:
            errors.append(f"Invalid probe timeout: {self.config.vpn.probe_timeout}")

        if not self.config.vpn.ip_endpoints:
            errors.append("At least one IP endpoint is required")

        if not self.config.vpn.container:
            errors.append("VPN container name cannot be empty")

        if self.config.orchestrator.command_timeout < 1:
            errors.append(f"Invalid command timeout: {self.config.orchestrator.command_timeout}")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ConfigError(error_msg)

    def get_config(self) -> MediactlConfig:
        """Get the current configuration."""
        return self.config


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def initialize_config(
    config_path: Optional[Union[str, Path]] = None,
    install_dir: Optional[Union[str, Path]] = None,
) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_path, install_dir)
    return _config_manager


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_config() -> MediactlConfig:
    """Get the current configuration."""
    return get_config_manager().get_config()


def setup_logging(config: MediactlConfig, verbose: bool = False) -> logging.Logger:
    """Configure logging for the command line."""
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.value)
    handlers = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        try:
            handlers.append(logging.FileHandler(config.log_file, encoding="utf-8"))
        except OSError as e:
            raise ConfigError(f"Cannot open log file {config.log_file}: {e}") from e
    logging.basicConfig(level=level, format=config.log_format, handlers=handlers, force=True)
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return logging.getLogger("mediactl")


def get_logger(name: str = "mediactl") -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)
