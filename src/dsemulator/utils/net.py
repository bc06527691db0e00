from __future__ import annotations

import socket
from typing import cast

import psutil


def split_host_port(address: str, default_port: int = 8081) -> tuple[str, int]:
    """
    Split a "host:port" address (an optional http:// scheme is tolerated) into its parts.

    Raises:
        ValueError: If the port is not numeric.
    """
    addr = address.strip()
    if "://" in addr:
        addr = addr.split("://", 1)[1]
    addr = addr.rstrip("/")
    host, sep, port = addr.rpartition(":")
    if not sep:
        return addr, default_port
    return host.strip("[]") or "localhost", int(port)


def is_listening(host: str, port: int, timeout: float = 0.6) -> bool:
    """
    Check that (host, port) is accepting connections (port is open and listening).

    Args:
        host: Address to check, for example "127.0.0.1".
        port: Port to check.
        timeout: Connection timeout in seconds.

    Returns:
        True if a TCP connection can be established (port is listening), otherwise False.
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def get_free_port() -> int:
    """
    Find a free TCP port on localhost.

    Opens a temporary socket bound to ("127.0.0.1", 0) to obtain an available port.
    Note: a race condition is possible between returning the value and actual use.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        addr_port = cast(tuple[str, int], s.getsockname())
        return addr_port[1]


def owner_info(port: int) -> str:
    """
    Return information about the process that is listening on the given TCP port.

    Returns "PID <pid>, name '<name>', user '<user>'" when the listener is found,
    "PID <pid>" if the process cannot be inspected, and "unknown" otherwise.
    """
    try:
        connections = psutil.net_connections(kind="inet")
    except (psutil.AccessDenied, PermissionError):
        return "unknown"
    for c in connections:
        if c.laddr and c.laddr.port == port and c.status == psutil.CONN_LISTEN:
            try:
                p = psutil.Process(c.pid or 0)
                return f"PID {p.pid}, name '{p.name()}', user '{p.username()}'"
            except (psutil.Error, ValueError):
                return f"PID {c.pid}"
    return "unknown"
