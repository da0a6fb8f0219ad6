"""
Brief: Global pytest configuration: src/ on sys.path, a per-test 10s timeout,
and DNS fakes shared by the handler, server and bootstrap tests.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from dnslib import QTYPE, RR, A, DNSRecord  # noqa: E402

from doh_relay.bootstrap import UpstreamHost  # noqa: E402

DOH_HOST = "cloudflare-dns.com."
DOH_ADDRS = ("104.16.248.249", "104.16.249.249")


def _alarm_handler(signum, frame):
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


def a_reply(request: DNSRecord, addresses, ttl: int = 300) -> DNSRecord:
    """Build a NOERROR reply to request with one A record per address."""
    reply = request.reply()
    qname = request.q.qname
    for addr in addresses:
        reply.add_answer(RR(qname, QTYPE.A, rdata=A(addr), ttl=ttl))
    return reply


class FakeTransport:
    """
    Brief: In-memory stand-in for HttpsTransport.

    Answers A questions found in ``answers`` (name -> list of IPv4 strings) and
    returns an empty NOERROR reply for anything else. Setting ``error`` makes
    every forward() raise it; setting ``raw`` returns those bytes verbatim.
    """

    def __init__(self, answers=None):
        self.answers = dict(answers or {})
        self.calls = []
        self.error = None
        self.raw = None

    def forward(self, query: bytes) -> bytes:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        if self.raw is not None:
            return self.raw
        request = DNSRecord.parse(query)
        if not request.questions:
            return request.reply().pack()
        q = request.questions[0]
        addrs = self.answers.get(str(q.qname), []) if q.qtype == QTYPE.A else []
        return a_reply(request, addrs).pack()


@pytest.fixture
def upstream_host():
    query = DNSRecord.question(DOH_HOST, "A")
    return UpstreamHost(DOH_HOST, DOH_ADDRS, a_reply(query, DOH_ADDRS))


@pytest.fixture
def fake_transport():
    return FakeTransport({"example.com.": ["93.184.216.34"]})


@pytest.fixture
def transport_factory():
    """Return the FakeTransport class so tests can build their own answers."""
    return FakeTransport
