"""Error taxonomy shared by the relay components.

Every failure the relay knows how to handle is a ``ProxyError`` subclass that
carries an ``ErrorKind`` so callers branch on ``exc.kind`` instead of parsing
messages. ``BootstrapError`` is the only fatal kind: it stops the listener from
ever starting. The per-query kinds are contained by the forwarding handler and
turned into SERVFAIL replies.
"""

from __future__ import annotations

import enum
from typing import Optional


class ErrorKind(enum.Enum):
    """Brief: Classification of relay failures."""

    BOOTSTRAP = "bootstrap"
    PACK = "pack"
    TRANSPORT = "transport"
    UNPACK = "unpack"


class ProxyError(Exception):
    """
    Brief: Base class for relay errors.

    Inputs:
    - message: Description of the error

    Outputs:
    - Exception instance with ``kind`` and ``fatal`` attributes
    """

    kind: ErrorKind
    fatal: bool = False


class BootstrapError(ProxyError):
    """Upstream hostname could not be resolved; the service cannot start."""

    kind = ErrorKind.BOOTSTRAP
    fatal = True


class PackError(ProxyError):
    """A DNS message could not be encoded to wire format."""

    kind = ErrorKind.PACK


class UnpackError(ProxyError):
    """Wire bytes could not be decoded into a DNS message."""

    kind = ErrorKind.UNPACK


class TransportError(ProxyError):
    """
    Brief: DNS-over-HTTPS (or bootstrap UDP) exchange failed.

    Inputs:
    - message: Description of the error
    - status: HTTP status code when the upstream answered with a non-200

    Outputs:
    - Exception instance
    """

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status
