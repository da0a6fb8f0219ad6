"""
Brief: Tests for the dnslib wire-format seam.

Inputs:
  - None

Outputs:
  - None
"""

import pytest
from dnslib import QTYPE, DNSRecord

from doh_relay import codec
from doh_relay.errors import ErrorKind, PackError, UnpackError


def test_pack_and_unpack_query():
    q = DNSRecord.question("example.com", "AAAA")
    parsed = codec.unpack(codec.pack(q))
    assert parsed.header.id == q.header.id
    assert str(parsed.q.qname) == "example.com."
    assert parsed.q.qtype == QTYPE.AAAA


def test_unpack_truncated_raises_unpack_error():
    with pytest.raises(UnpackError) as ei:
        codec.unpack(b"\x12\x34\x01")
    assert ei.value.kind is ErrorKind.UNPACK
    assert ei.value.__cause__ is not None


def test_pack_failure_raises_pack_error():
    class Broken:
        def pack(self):
            raise ValueError("cannot encode")

    with pytest.raises(PackError) as ei:
        codec.pack(Broken())
    assert isinstance(ei.value.__cause__, ValueError)
