"""Pytest configuration and fixtures."""

from __future__ import annotations

import subprocess
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytest

from mediactl.errors import ProbeError


ENV_VARS = [
    "INSTALL_DIRECTORY",
    "MEDIA_SERVICE",
    "MEDIACTL_CONFIG",
    "MEDIACTL_VPN_CONTAINER",
    "MEDIACTL_PROBE_TIMEOUT",
    "MEDIACTL_READINESS_TIMEOUT",
    "LOG_LEVEL",
    "LOG_FILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of config loading."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeOrchestrator:
    """Scripted stand-in for ComposeOrchestrator.

    `counts` holds one (total, running) pair per poll tick; the last pair
    repeats once the script runs out.
    """

    def __init__(self, counts: Sequence[Tuple[int, int]] = ((1, 1),)):
        self.counts = list(counts)
        self.ticks = 0
        self.calls: List[str] = []
        self.exec_results: Dict[str, subprocess.CompletedProcess] = {}
        self.exec_calls: List[Tuple[str, List[str], Optional[float]]] = []

    def _current(self) -> Tuple[int, int]:
        return self.counts[min(self.ticks, len(self.counts) - 1)]

    def list_services(self, status: Optional[str] = None) -> List[str]:
        total, running = self._current()
        if status is None:
            return [f"svc{i}" for i in range(total)]
        # The running query closes out the tick
        self.ticks += 1
        return [f"svc{i}" for i in range(running)]

    def stop_all(self) -> None:
        self.calls.append("stop")

    def start_all(self) -> None:
        self.calls.append("start")

    def teardown_all(self) -> None:
        self.calls.append("down")

    def exec_in(self, container, command, timeout=None):
        self.exec_calls.append((container, list(command), timeout))
        endpoint = command[-1]
        return self.exec_results.get(
            endpoint,
            subprocess.CompletedProcess(command, 7, stdout="", stderr="connect failed"),
        )


class FakeProber:
    """Prober answering from a dict; exceptions in the dict are raised as ProbeError."""

    def __init__(self, responses: Dict[str, Union[str, Exception]], context: str = "local"):
        self.responses = responses
        self.context = context
        self.calls: List[Tuple[str, float]] = []

    def probe(self, endpoint: str, timeout: float) -> str:
        self.calls.append((endpoint, timeout))
        answer = self.responses.get(endpoint, ProbeError(f"{endpoint}: no route"))
        if isinstance(answer, Exception):
            raise ProbeError(str(answer))
        return answer


class FakeSleep:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def install_dir(tmp_path):
    """An install directory with a base compose file and some config."""
    root = tmp_path / "stack"
    (root / "config" / "jellyfin").mkdir(parents=True)
    (root / "config" / "jellyfin" / "system.xml").write_text("<config/>")
    (root / "config" / "jellyfin" / "jellyfin.log").write_text("noise")
    (root / "docker-compose.yaml").write_text("services:\n  jellyfin:\n    image: jellyfin/jellyfin\n")
    return root
