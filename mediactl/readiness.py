"""
Readiness polling for the compose stack.

Each tick asks the orchestrator for the total number of services and the number
currently running. The poll ends when both counts match or when the tick budget
is spent.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from .config import ReadinessConfig, get_logger
from .errors import ReadinessTimeout

logger = get_logger(__name__)


class PollState(Enum):
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ServiceStatus:
    total: int
    running: int

    def __str__(self) -> str:
        return f"{self.running}/{self.total}"


class ServiceLister(Protocol):
    def list_services(self, status: str | None = None) -> list[str]: ...


def next_state(elapsed_ticks: int, running: int, total: int, budget: int) -> PollState:
    """Decide what follows the observation made at `elapsed_ticks`."""
    if total > 0 and running == total:
        return PollState.SUCCEEDED
    if elapsed_ticks + 1 >= budget:
        return PollState.TIMED_OUT
    return PollState.POLLING


def query_status(orchestrator: ServiceLister) -> ServiceStatus:
    total = len(orchestrator.list_services())
    running = len(orchestrator.list_services(status="running"))
    return ServiceStatus(total=total, running=running)


class ReadinessPoller:
    """Blocks until every compose service is running."""

    def __init__(
        self,
        orchestrator: ServiceLister,
        config: ReadinessConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.orchestrator = orchestrator
        self.config = config or ReadinessConfig()
        self.sleep = sleep

    def wait(self) -> ServiceStatus:
        budget = self.config.timeout
        logger.info(
            f"Waiting for services to start (up to {budget * self.config.interval:g} seconds)..."
        )

        tick = 0
        while True:
            status = query_status(self.orchestrator)
            if tick % self.config.progress_every == 0:
                logger.info(f"Services running: {status}")

            state = next_state(tick, status.running, status.total, budget)
            if state is PollState.SUCCEEDED:
                logger.info(f"All services are up ({status})")
                return status
            if state is PollState.TIMED_OUT:
                # Failure is reported once `budget` intervals have elapsed
                self.sleep(self.config.interval)
                logger.error(f"Timed out waiting for services ({status} running)")
                raise ReadinessTimeout(status.running, status.total, budget)

            self.sleep(self.config.interval)
            tick += 1


def wait_for_services(
    orchestrator: ServiceLister,
    config: ReadinessConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ServiceStatus:
    return ReadinessPoller(orchestrator, config, sleep).wait()
