"""Startup resolution of the DoH upstream's own address.

Brief:
  The HTTPS transport connects to the upstream by hostname. When the system
  resolver points at this relay, that lookup would loop back into the relay
  itself, so the address is resolved once at startup over plain UDP and then
  served locally for the lifetime of the process.

  Right after boot the network path is often not ready yet, so resolution
  retries with a fixed delay before giving up. The retry loop is an explicit
  state machine (``BootstrapState``) driven one attempt at a time by
  ``BootstrapResolver.step`` so it can be exercised with a fake sleep.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from dnslib import QTYPE, RCODE, DNSRecord

from . import codec
from .errors import BootstrapError, ProxyError
from .transports.udp import udp_query

DEFAULT_BOOTSTRAP_HOST = "1.1.1.1"
DEFAULT_BOOTSTRAP_PORT = 53
DEFAULT_ATTEMPTS = 6
DEFAULT_DELAY_SECONDS = 1.0


def absolute_name(name: str) -> str:
    """Brief: Lower-case a hostname and make sure it ends with a dot.

    Inputs:
      - name: hostname such as 'cloudflare-dns.com' or 'Cloudflare-DNS.com.'

    Outputs:
      - str: 'cloudflare-dns.com.'
    """
    name = str(name).strip().lower()
    return name if name.endswith(".") else name + "."


@dataclass(frozen=True)
class UpstreamHost:
    """Brief: Resolved address record for the DoH upstream hostname.

    Inputs:
      - hostname: absolute hostname that was resolved
      - addresses: IPv4 addresses from the A records of the reply
      - message: full bootstrap reply, reused to answer local lookups

    Outputs:
      - UpstreamHost instance (immutable)
    """

    hostname: str
    addresses: Tuple[str, ...]
    message: DNSRecord = field(compare=False, repr=False)


class BootstrapState(enum.Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED_EXHAUSTED = "failed_exhausted"


class BootstrapResolver:
    """
    Brief: Resolve the upstream hostname over plain DNS with fixed-delay retry.

    Inputs (constructor):
      - hostname: DoH upstream hostname
      - resolver_host / resolver_port: plaintext resolver to ask
      - attempts: total attempts including the first one (default 6)
      - delay: seconds to wait before each retry (default 1.0)
      - timeout_ms: UDP timeout per attempt
      - exchange: optional callable(query_wire) -> reply_wire replacing UDP
      - sleep: callable used for the retry delay (default time.sleep)
      - logger: optional logging.Logger

    Example:
        >>> resolver = BootstrapResolver("cloudflare-dns.com")
        >>> # host = resolver.resolve_upstream_host()
        >>> # host.addresses -> ('104.16.248.249', '104.16.249.249')
    """

    def __init__(
        self,
        hostname: str,
        resolver_host: str = DEFAULT_BOOTSTRAP_HOST,
        resolver_port: int = DEFAULT_BOOTSTRAP_PORT,
        *,
        attempts: int = DEFAULT_ATTEMPTS,
        delay: float = DEFAULT_DELAY_SECONDS,
        timeout_ms: int = 2000,
        exchange: Optional[Callable[[bytes], bytes]] = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if int(attempts) < 1:
            raise ValueError("attempts must be at least 1")
        self.hostname = absolute_name(hostname)
        self.resolver_host = resolver_host
        self.resolver_port = int(resolver_port)
        self.attempts = int(attempts)
        self.delay = max(0.0, float(delay))
        self.timeout_ms = int(timeout_ms)
        self._exchange = exchange or self._udp_exchange
        self._sleep = sleep
        self.logger = logger or logging.getLogger("doh_relay.bootstrap")
        self.reset()

    def reset(self) -> None:
        """Return the state machine to its initial ATTEMPTING state."""
        self.state = BootstrapState.ATTEMPTING
        self.attempt = 0
        self.last_error: Optional[ProxyError] = None
        self.upstream_host: Optional[UpstreamHost] = None

    def _udp_exchange(self, wire: bytes) -> bytes:
        return udp_query(
            self.resolver_host,
            self.resolver_port,
            wire,
            timeout_ms=self.timeout_ms,
        )

    def _attempt_once(self) -> UpstreamHost:
        """Brief: Send one A query for the hostname and validate the reply.

        Outputs:
          - UpstreamHost built from the reply.

        Raises a ProxyError subclass when the exchange fails, the reply does
        not decode, does not match the query, or carries no A record.
        """
        query = DNSRecord.question(self.hostname, "A")
        reply = codec.unpack(self._exchange(codec.pack(query)))
        if reply.header.id != query.header.id:
            raise BootstrapError(
                f"reply id {reply.header.id} does not match query id {query.header.id}"
            )
        addresses = tuple(str(rr.rdata) for rr in reply.rr if rr.rtype == QTYPE.A)
        if not addresses:
            rcode = RCODE.get(reply.header.rcode, reply.header.rcode)
            raise BootstrapError(f"no A record for {self.hostname} (rcode {rcode})")
        return UpstreamHost(self.hostname, addresses, reply)

    def step(self) -> BootstrapState:
        """Brief: Perform exactly one resolution attempt.

        Inputs:
          - None

        Outputs:
          - BootstrapState after the attempt. Calling step() in a terminal
            state does nothing and returns that state.

        Retries (every attempt after the first) sleep ``delay`` seconds before
        querying.
        """
        if self.state is not BootstrapState.ATTEMPTING:
            return self.state

        if self.attempt > 0:
            self._sleep(self.delay)
            self.logger.info("retry %d...", self.attempt)
        self.attempt += 1

        try:
            self.upstream_host = self._attempt_once()
        except ProxyError as e:
            self.last_error = e
            self.logger.warning(
                "Failed to obtain address of DoH host %s via %s:%d (attempt %d/%d): %s",
                self.hostname,
                self.resolver_host,
                self.resolver_port,
                self.attempt,
                self.attempts,
                e,
            )
            if self.attempt >= self.attempts:
                self.state = BootstrapState.FAILED_EXHAUSTED
            return self.state

        self.state = BootstrapState.SUCCEEDED
        self.logger.info(
            "DoH host %s resolved to %s",
            self.hostname,
            ", ".join(self.upstream_host.addresses),
        )
        return self.state

    def resolve_upstream_host(self) -> UpstreamHost:
        """Brief: Drive the state machine until it succeeds or runs out of attempts.

        Inputs:
          - None

        Outputs:
          - UpstreamHost on success.

        Raises BootstrapError, chained to the last attempt's failure, when all
        attempts fail.
        """
        self.reset()
        while self.step() is BootstrapState.ATTEMPTING:
            pass
        if self.state is BootstrapState.SUCCEEDED and self.upstream_host is not None:
            return self.upstream_host
        raise BootstrapError(
            f"Failed to obtain address of DoH host {self.hostname} after "
            f"{self.attempts} attempts; the DNS service could not be started"
        ) from self.last_error
