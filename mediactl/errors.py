"""Exceptions raised by mediactl. Each one is fatal to the current command."""


class MediactlError(RuntimeError):
    """Base class for errors reported as `ERROR: ...` by the command line."""


class ConfigError(MediactlError):
    """Raised when configuration cannot be loaded or fails validation."""


class CommandError(MediactlError):
    """Raised when a docker command fails."""


class ReadinessTimeout(MediactlError):
    """Raised when services do not all report running within the budget."""

    def __init__(self, running: int, total: int, timeout: int):
        self.running = running
        self.total = total
        self.timeout = timeout
        super().__init__(
            f"Services did not start after {timeout} checks "
            f"({running}/{total} running)"
        )


class ProbeError(MediactlError):
    """Raised by a prober when a single endpoint cannot be read."""


class IPResolutionError(MediactlError):
    """Raised when no endpoint returned a usable IPv4 address."""


class VpnLeakError(MediactlError):
    """Raised when the proxied container shares the caller's public IP."""

    def __init__(self, ip: str, container: str):
        self.ip = ip
        self.container = container
        super().__init__(
            f"Your IP and {container}'s IP are the same ({ip})! "
            f"{container} is NOT protected by the VPN"
        )


class BackupError(MediactlError):
    """Raised when a backup archive cannot be written."""
