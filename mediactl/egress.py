"""
Egress IP verification.

Compares the public IP seen from this host with the one seen from inside the
VPN-routed container. Endpoints are tried in order and the first response that
looks like an IPv4 address wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

import requests

from .config import VpnConfig, get_logger
from .errors import CommandError, IPResolutionError, ProbeError, VpnLeakError

logger = get_logger(__name__)

IPV4_PATTERN = re.compile(r"^\d+\.\d+\.\d+\.\d+$", re.ASCII)

LOCAL = "local"
PROXIED = "proxied"


class Prober(Protocol):
    context: str

    def probe(self, endpoint: str, timeout: float) -> str: ...


class LocalProber:
    """Reads endpoints directly from this host."""

    context = LOCAL

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()

    def probe(self, endpoint: str, timeout: float) -> str:
        try:
            response = self.session.get(endpoint, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ProbeError(f"{endpoint}: {exc}") from exc
        return response.text


class ContainerProber:
    """Reads endpoints with curl from inside a container's network namespace."""

    context = PROXIED

    def __init__(self, orchestrator, container: str):
        self.orchestrator = orchestrator
        self.container = container

    def probe(self, endpoint: str, timeout: float) -> str:
        command = ["curl", "-s", "-f", "--max-time", str(timeout), endpoint]
        # docker exec gets 5s on top of curl's own limit
        try:
            result = self.orchestrator.exec_in(self.container, command, timeout=timeout + 5)
        except CommandError as exc:
            raise ProbeError(f"{endpoint} from {self.container}: {exc}") from exc
        if result.returncode != 0:
            raise ProbeError(
                f"{endpoint} from {self.container}: exit {result.returncode} "
                f"{result.stderr.strip()}".rstrip()
            )
        return result.stdout


@dataclass(frozen=True)
class IPObservation:
    ip: str
    context: str
    endpoint: str
    country: Optional[str] = None


@dataclass(frozen=True)
class VpnCheckResult:
    local: IPObservation
    proxied: IPObservation

    @property
    def leaking(self) -> bool:
        return self.local.ip == self.proxied.ip


def is_ipv4(text: str) -> bool:
    return IPV4_PATTERN.fullmatch(text) is not None


def get_ip_with_retries(
    prober: Prober, endpoints: Iterable[str], timeout: float
) -> IPObservation:
    """Return the first IPv4 answer from `endpoints`, tried in order."""
    tried = 0
    for endpoint in endpoints:
        tried += 1
        try:
            body = prober.probe(endpoint, timeout).strip()
        except ProbeError as exc:
            logger.debug(f"IP endpoint failed: {exc}")
            continue
        if is_ipv4(body):
            return IPObservation(ip=body, context=prober.context, endpoint=endpoint)
        logger.debug(f"IP endpoint {endpoint} returned unexpected body {body[:40]!r}")

    raise IPResolutionError(
        f"Could not determine {prober.context} IP address "
        f"({tried} endpoints tried)"
    )


def get_country(prober: Prober, endpoint: str, timeout: float) -> Optional[str]:
    """Best-effort country lookup; failures are logged and yield None."""
    try:
        country = prober.probe(endpoint, timeout).strip()
    except ProbeError as exc:
        logger.warning(f"Could not determine {prober.context} country: {exc}")
        return None
    if not country:
        logger.warning(f"Could not determine {prober.context} country: empty response")
        return None
    return country


def resolve(prober: Prober, config: VpnConfig) -> IPObservation:
    observation = get_ip_with_retries(prober, config.ip_endpoints, config.probe_timeout)
    country = get_country(prober, config.country_endpoint, config.probe_timeout)
    return IPObservation(
        ip=observation.ip,
        context=observation.context,
        endpoint=observation.endpoint,
        country=country,
    )


def describe(observation: IPObservation) -> str:
    if observation.country:
        return f"{observation.ip} ({observation.country})"
    return observation.ip


def check_vpn(local: Prober, proxied: Prober, config: VpnConfig) -> VpnCheckResult:
    """Raise VpnLeakError when the proxied context shares our public IP."""
    logger.info("Getting your IP...")
    local_obs = resolve(local, config)
    logger.info(f"Your local IP: {describe(local_obs)}")

    logger.info(f"Getting {config.container}'s IP...")
    proxied_obs = resolve(proxied, config)
    logger.info(f"{config.container}'s IP: {describe(proxied_obs)}")

    result = VpnCheckResult(local=local_obs, proxied=proxied_obs)
    if result.leaking:
        logger.error(
            f"Your IPs are the same! {config.container} is exposing your IP address"
        )
        raise VpnLeakError(local_obs.ip, config.container)

    logger.info(f"Your IPs are different. {config.container} is working!")
    return result
