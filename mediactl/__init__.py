"""mediactl - manage a docker compose media server stack."""

__version__ = "1.0.0"
