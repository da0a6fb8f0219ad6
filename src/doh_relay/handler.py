import logging
from typing import Optional

from dnslib import QTYPE, RCODE, DNSHeader, DNSRecord

from . import codec
from .bootstrap import UpstreamHost, absolute_name
from .cache import NameCache
from .errors import PackError, ProxyError, UnpackError
from .transports.doh import HttpsTransport


def reply_to(request: DNSRecord, message: DNSRecord) -> DNSRecord:
    """Rewrite a copy of ``message`` so it answers ``request``.

    Inputs:
      - request: DNSRecord the client sent.
      - message: DNSRecord holding the answer data (cached, upstream or bootstrap).
    Outputs:
      - DNSRecord: independent copy with ID, QR, opcode, RD, CD and the
        question taken from the request. Answer, authority and additional
        sections and the response code are left as they were.

    The copy goes through wire format so a shared cached message is never
    mutated by concurrent handlers. Raises PackError or UnpackError when the
    message does not survive that round trip.
    """
    reply = codec.unpack(codec.pack(message))
    reply.header.id = request.header.id
    reply.header.qr = 1
    reply.header.opcode = request.header.opcode
    reply.header.rd = request.header.rd
    reply.header.cd = request.header.cd
    reply.questions = list(request.questions[:1])
    return reply


def servfail_reply(request: DNSRecord, echo_question: bool = True) -> DNSRecord:
    """Create a SERVFAIL reply for the given request, echoing at most one question.

    Only opcode, RD and CD are taken from the request header.
    """
    header = DNSHeader(id=request.header.id, qr=1, ra=1, rcode=RCODE.SERVFAIL)
    header.opcode = request.header.opcode
    header.rd = request.header.rd
    header.cd = request.header.cd
    questions = list(request.questions[:1]) if echo_question else []
    return DNSRecord(header, questions=questions)


class ForwardingHandler:
    """
    Per-query orchestrator between the UDP listener and the DoH upstream.

    Inputs (constructor):
      - upstream_host: UpstreamHost from bootstrap, used to answer lookups for
        the DoH hostname itself.
      - transport: object with ``forward(bytes) -> bytes`` (HttpsTransport).
      - cache: NameCache for A-type answers.
      - logger: optional logging.Logger for per-query failures.

    Example use:
        >>> # handler = ForwardingHandler(host, HttpsTransport(url), NameCache())
        >>> # reply = handler.serve(DNSRecord.question("example.com"))
    """

    def __init__(
        self,
        upstream_host: UpstreamHost,
        transport: HttpsTransport,
        cache: NameCache,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.upstream_host = upstream_host
        self.transport = transport
        self.cache = cache
        self.logger = logger or logging.getLogger("doh_relay.handler")

    def _single_a_name(self, request: DNSRecord) -> Optional[str]:
        """Return the queried name when the request is exactly one A question."""
        if len(request.questions) != 1:
            return None
        q = request.questions[0]
        if q.qtype != QTYPE.A:
            return None
        return str(q.qname)

    def query_over_https(self, request: DNSRecord) -> DNSRecord:
        """
        Send a request to the DoH upstream and decode the answer.

        Inputs:
            - request (DNSRecord): query to forward as-is.

        Outputs:
            - DNSRecord: decoded upstream response.

        Raises PackError, TransportError or UnpackError, whichever step fails
        first.
        """
        wire = codec.pack(request)
        response_wire = self.transport.forward(wire)
        return codec.unpack(response_wire)

    def serve(self, request: DNSRecord) -> DNSRecord:
        """
        Produce the reply for one client query.

        Inputs:
            - request (DNSRecord): parsed client query.

        Outputs:
            - DNSRecord: reply to send back; a SERVFAIL reply when the upstream
              exchange fails or the answer cannot be re-encoded.

        Order of decisions:
            1. A query for the DoH hostname: answered from the bootstrap record.
            2. A query with a cached answer: answered from the cache.
            3. Everything else goes upstream; successful A answers are cached.

        An upstream answer is cached only after the reply built from it
        encoded cleanly.
        """
        name = self._single_a_name(request)

        try:
            if name is not None and absolute_name(name) == self.upstream_host.hostname:
                self.logger.debug("Answering %s from bootstrap record", name)
                return reply_to(request, self.upstream_host.message)

            if name is not None:
                cached = self.cache.get(name)
                if cached is not None:
                    self.logger.debug("Cache hit %s", name)
                    return reply_to(request, cached)

            response = self.query_over_https(request)
            reply = reply_to(request, response)
        except ProxyError as e:
            self.logger.error(
                "Query for %s failed (%s): %s",
                name if name is not None else _describe(request),
                e.kind.value,
                e,
            )
            return servfail_reply(request)

        if name is not None:
            if response.header.rcode == RCODE.SERVFAIL:
                self.logger.debug("Not caching %s (SERVFAIL from upstream)", name)
            else:
                self.cache.set(name, response)
        return reply

    def handle_wire(self, data: bytes) -> Optional[bytes]:
        """Process one datagram and return the reply bytes.

        Inputs:
          - data: wire-format query received from a client.
        Outputs:
          - bytes: wire-format reply, or None when the datagram is not a
            decodable DNS message (nothing is sent back).
        """
        try:
            request = codec.unpack(data)
        except UnpackError as e:
            self.logger.debug("Dropping undecodable datagram: %s", e)
            return None

        reply = self.serve(request)
        try:
            return codec.pack(reply)
        except PackError as e:
            self.logger.error("Failed to encode reply for %s: %s", _describe(request), e)
        try:
            return codec.pack(servfail_reply(request))
        except PackError:
            # The echoed question itself does not encode; answer header-only.
            return codec.pack(servfail_reply(request, echo_question=False))


def _describe(request: DNSRecord) -> str:
    if not request.questions:
        return "<no question>"
    q = request.questions[0]
    return f"{q.qname} {QTYPE.get(q.qtype, q.qtype)}"
