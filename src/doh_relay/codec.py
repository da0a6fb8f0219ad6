"""Thin wire-format seam over dnslib.

The relay never touches raw DNS bytes directly; everything goes through
``pack``/``unpack`` so encoding failures surface as ``PackError`` and
``UnpackError`` rather than whatever dnslib happens to raise.
"""

from __future__ import annotations

from dnslib import DNSRecord

from .errors import PackError, UnpackError


def pack(message: DNSRecord) -> bytes:
    """
    Brief: Encode a DNS message to wire format.

    Inputs:
    - message: dnslib.DNSRecord

    Outputs:
    - bytes: wire-format message

    Raises PackError when dnslib cannot encode the message.
    """
    try:
        return message.pack()
    except Exception as e:
        raise PackError(f"Can't pack message to wire format: {e}") from e


def unpack(wire: bytes) -> DNSRecord:
    """
    Brief: Decode wire-format bytes into a DNS message.

    Inputs:
    - wire: bytes received from a client or upstream

    Outputs:
    - dnslib.DNSRecord

    Raises UnpackError for truncated or malformed input.
    """
    try:
        return DNSRecord.parse(wire)
    except Exception as e:
        raise UnpackError(f"Can't unpack message from wire format: {e}") from e
