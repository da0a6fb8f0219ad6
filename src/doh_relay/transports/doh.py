import base64
import http.client
import logging
import ssl
import urllib.parse
from typing import Dict, Optional, Tuple

from .. import __version__
from ..errors import TransportError

logger = logging.getLogger("doh_relay.transports.doh")

DEFAULT_CONTENT_TYPE = "application/dns-message"


def _b64url_no_pad(data: bytes) -> str:
    """
    Brief: Base64url-encode without padding per RFC 8484.

    Inputs:
    - data: raw bytes to encode

    Outputs:
    - str: base64url string without '=' padding

    Example:
        >>> _b64url_no_pad(b"\x01\x02")
        'AQI'
    """
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _build_ssl_ctx(verify: bool = True, ca_file: Optional[str] = None) -> ssl.SSLContext:
    """
    Brief: Build SSLContext for HTTPS connections.

    Inputs:
    - verify: whether to verify TLS certs
    - ca_file: optional CA bundle path

    Outputs:
    - ssl.SSLContext
    """
    if not verify:
        return ssl._create_unverified_context()
    return (
        ssl.create_default_context(cafile=ca_file)
        if ca_file
        else ssl.create_default_context()
    )


def doh_query(
    url: str,
    query: bytes,
    *,
    method: str = "POST",
    content_type: str = DEFAULT_CONTENT_TYPE,
    headers: Optional[Dict[str, str]] = None,
    timeout_ms: int = 5000,
    verify: bool = True,
    ca_file: Optional[str] = None,
) -> Tuple[bytes, Dict[str, str]]:
    """
    Brief: Perform a single DNS-over-HTTPS exchange (RFC 8484).

    Inputs:
    - url: Target DoH endpoint, e.g. https://cloudflare-dns.com/dns-query
    - query: Wire-format DNS query bytes
    - method: 'POST' or 'GET'
    - content_type: Content-Type sent with POST bodies
    - headers: Optional extra headers to include
    - timeout_ms: Socket timeout per request
    - verify: Verify TLS certificates (HTTPS only)
    - ca_file: Optional CA bundle path for verification

    Outputs:
    - (body, resp_headers): response body bytes and lower-cased headers

    Notes:
    - For POST: sends the query as the request body.
    - For GET: appends ?dns=<base64url> and sends Accept: application/dns-message.
    - Raises TransportError for non-200 responses and network/TLS errors. The
      original exception is kept as ``__cause__``.
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("https", "http"):
        raise TransportError(f"Unsupported URL scheme: {parsed.scheme}")

    timeout = timeout_ms / 1000.0
    path = parsed.path or "/dns-query"
    extra_headers = {k: v for (k, v) in (headers or {}).items()}

    if not any(k.lower() == "user-agent" for k in extra_headers):
        extra_headers["User-Agent"] = f"doh-relay/{__version__}"

    if method.upper() == "GET":
        qs = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
        qs["dns"] = [_b64url_no_pad(query)]
        qstr = urllib.parse.urlencode([(k, v[0]) for k, v in qs.items()])
        target = path + "?" + qstr
        body = None
        hdrs = {"Accept": DEFAULT_CONTENT_TYPE, **extra_headers}
    else:
        target = path + ("?" + parsed.query if parsed.query else "")
        body = query
        hdrs = {
            "Content-Type": content_type,
            "Accept": DEFAULT_CONTENT_TYPE,
            **extra_headers,
        }

    try:
        if parsed.scheme == "https":
            conn = http.client.HTTPSConnection(
                parsed.hostname,
                parsed.port or 443,
                timeout=timeout,
                context=_build_ssl_ctx(verify=verify, ca_file=ca_file),
            )
        else:
            conn = http.client.HTTPConnection(
                parsed.hostname,
                parsed.port or 80,
                timeout=timeout,
            )
        try:
            conn.request(method.upper(), target, body=body, headers=hdrs)
            resp = conn.getresponse()
            data = resp.read()
            if resp.status != 200:
                raise TransportError(
                    f"HTTP error code {resp.status} {resp.reason}", status=resp.status
                )
            headers_out = {k.lower(): v for k, v in resp.getheaders()}
            return data, headers_out
        finally:
            conn.close()
    except ssl.SSLError as e:
        raise TransportError(f"TLS error: {e}") from e
    except (OSError, http.client.HTTPException) as e:
        raise TransportError(f"Network error: {e}") from e


class HttpsTransport:
    """
    Brief: Fixed-endpoint DoH client used by the forwarding handler.

    Inputs (constructor):
    - url: DoH endpoint URL
    - method: 'POST' (default) or 'GET'
    - content_type: Content-Type for POST bodies
    - timeout_ms: per-request timeout
    - verify: verify the upstream certificate (default True)
    - ca_file: optional CA bundle
    - headers: optional extra request headers

    Example:
        >>> transport = HttpsTransport("https://cloudflare-dns.com/dns-query")
        >>> # reply_wire = transport.forward(query_wire)
    """

    def __init__(
        self,
        url: str,
        *,
        method: str = "POST",
        content_type: str = DEFAULT_CONTENT_TYPE,
        timeout_ms: int = 5000,
        verify: bool = True,
        ca_file: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.url = url
        self.method = method.upper()
        self.content_type = content_type
        self.timeout_ms = int(timeout_ms)
        self.verify = bool(verify)
        self.ca_file = ca_file
        self.headers = dict(headers or {})
        if not self.verify:
            logger.warning(
                "TLS certificate verification is disabled for %s; "
                "the upstream connection can be intercepted",
                url,
            )

    def forward(self, query: bytes) -> bytes:
        """
        Brief: Exchange one wire-format query with the upstream.

        Inputs:
        - query: wire-format DNS query

        Outputs:
        - bytes: wire-format DNS response body

        No retries; any failure raises TransportError.
        """
        body, _ = doh_query(
            self.url,
            query,
            method=self.method,
            content_type=self.content_type,
            headers=self.headers,
            timeout_ms=self.timeout_ms,
            verify=self.verify,
            ca_file=self.ca_file,
        )
        return body
