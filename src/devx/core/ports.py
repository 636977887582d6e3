"""Port allocation for session services.

Ports are handed out by the OS (bind to port 0) and released straight away.
Nothing is reserved: another process can take a port between allocation and
the service starting.
"""

import socket
from typing import Callable, Iterable, Mapping

from devx.core.errors import PortExhaustion, ValidationError

MIN_PORT = 1024
MAX_PORT = 65535

# Attempts per requested service before giving up
MAX_ATTEMPTS = 20


def get_free_port() -> int:
    """Ask the OS for a currently free TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("", 0))
        return sock.getsockname()[1]


def allocate_ports(
    services: Iterable[str],
    probe: Callable[[], int] = get_free_port,
) -> dict[str, int]:
    """Allocate one distinct free port per service.

    Args:
        services: Service names in configured order.
        probe: Source of candidate ports. Tests pass a deterministic one.

    Returns:
        Mapping of service name to port, all values distinct.

    Raises:
        PortExhaustion: If 20 consecutive candidates for one service were
            duplicates or out of range.
    """
    ports: dict[str, int] = {}
    for service in services:
        taken = set(ports.values())
        for _ in range(MAX_ATTEMPTS):
            candidate = probe()
            if candidate not in taken and MIN_PORT <= candidate <= MAX_PORT:
                ports[service] = candidate
                break
        else:
            raise PortExhaustion(
                f"could not find a free port for '{service}' "
                f"after {MAX_ATTEMPTS} attempts"
            )
    return ports


def validate_port(port: int) -> int:
    """Check a user-supplied port.

    Raises:
        ValidationError: If the port is privileged or out of range.
    """
    if 0 < port < MIN_PORT:
        raise ValidationError(
            f"port {port} requires root privileges (use {MIN_PORT}-{MAX_PORT})"
        )
    if port < MIN_PORT or port > MAX_PORT:
        raise ValidationError(
            f"port {port} is out of range (must be {MIN_PORT}-{MAX_PORT})"
        )
    return port


def validate_port_overrides(overrides: Mapping[str, int]) -> dict[str, int]:
    """Validate every port in a user request and reject duplicates.

    Raises:
        ValidationError: On a bad or repeated port.
    """
    seen: dict[int, str] = {}
    for service, port in overrides.items():
        validate_port(port)
        if port in seen:
            raise ValidationError(
                f"port {port} assigned to both '{seen[port]}' and '{service}'"
            )
        seen[port] = service
    return dict(overrides)


def legacy_port_overrides(fe_port: int | None, api_port: int | None) -> dict[str, int]:
    """Map the ``--fe-port``/``--api-port`` flags onto the ``ui``/``api`` services.

    Returns an empty mapping when neither flag is given.

    Raises:
        ValidationError: If only one of the two flags is given.
    """
    if fe_port is None and api_port is None:
        return {}
    if fe_port is None or api_port is None:
        raise ValidationError("--fe-port and --api-port must be given together")
    return validate_port_overrides({"ui": fe_port, "api": api_port})
