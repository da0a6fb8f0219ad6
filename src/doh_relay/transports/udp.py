import socket
from typing import Optional

from ..errors import TransportError


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
    source_ip: Optional[str] = None,
) -> bytes:
    """
    Brief: Perform a single plain UDP DNS exchange.

    Inputs:
    - host: resolver host/IP
    - port: resolver UDP port
    - query: wire-format DNS query bytes
    - timeout_ms: socket timeout in milliseconds
    - source_ip: optional source address to bind

    Outputs:
    - bytes: wire-format DNS response

    Raises TransportError on socket errors and timeouts.

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 9, b'\x00\x01', timeout_ms=10)
        ... except TransportError:
        ...     pass
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            if source_ip:
                s.bind((source_ip, 0))
            s.settimeout(timeout_ms / 1000.0)
            s.sendto(query, (host, int(port)))
            data, _ = s.recvfrom(4096)
            return data
    except OSError as e:
        raise TransportError(f"UDP error: {e}") from e
