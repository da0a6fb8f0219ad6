"""Typed configuration models for doh-relay.

The YAML file maps one-to-one onto ``ProxyConfig``; every section is optional
and falls back to the defaults below. Unknown keys are rejected so typos do not
silently fall back to defaults.
"""

from __future__ import annotations

import urllib.parse
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, validator

from ..cache import (
    DEFAULT_CLEANUP_INTERVAL_SECONDS,
    DEFAULT_MAXSIZE,
    DEFAULT_TTL_SECONDS,
)
from ..transports.doh import DEFAULT_CONTENT_TYPE

DEFAULT_UPSTREAM_URL = "https://cloudflare-dns.com/dns-query"


class ListenConfig(BaseModel):
    """Brief: Local UDP listener address."""

    host: str = "127.0.0.1"
    port: int = Field(default=53, ge=0, le=65535)

    class Config:
        extra = "forbid"


class UpstreamConfig(BaseModel):
    """Brief: DoH upstream endpoint and HTTPS client settings.

    Inputs:
      - url: DoH endpoint URL (http or https).
      - hostname: Name answered locally from the bootstrap record; defaults to
        the host part of url.
      - method: POST (default) or GET.
      - content_type: Content-Type sent with POST bodies.
      - timeout_ms: Per-request timeout.
      - verify: Verify the upstream TLS certificate.
      - ca_file: Optional CA bundle path.
      - headers: Extra request headers.

    Outputs:
      - UpstreamConfig instance.
    """

    url: str = DEFAULT_UPSTREAM_URL
    hostname: Optional[str] = None
    method: str = "POST"
    content_type: str = DEFAULT_CONTENT_TYPE
    timeout_ms: int = Field(default=5000, gt=0)
    verify: bool = True
    ca_file: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)

    class Config:
        extra = "forbid"

    @validator("url")
    def _check_url(cls, v):
        parsed = urllib.parse.urlparse(str(v))
        if parsed.scheme not in ("https", "http"):
            raise ValueError(f"unsupported URL scheme: {parsed.scheme!r}")
        if not parsed.hostname:
            raise ValueError("url must include a hostname")
        return str(v)

    @validator("method", pre=True)
    def _check_method(cls, v):
        method = str(v).upper()
        if method not in ("POST", "GET"):
            raise ValueError("method must be POST or GET")
        return method

    def resolved_hostname(self) -> str:
        """Return the upstream hostname in absolute form (trailing dot)."""
        name = self.hostname or urllib.parse.urlparse(self.url).hostname or ""
        name = name.strip().lower()
        return name if name.endswith(".") else name + "."


class BootstrapConfig(BaseModel):
    """Brief: Plaintext resolver used once at startup, plus retry policy."""

    host: str = "1.1.1.1"
    port: int = Field(default=53, gt=0, le=65535)
    attempts: int = Field(default=6, ge=1)
    delay_seconds: float = Field(default=1.0, ge=0)
    timeout_ms: int = Field(default=2000, gt=0)

    class Config:
        extra = "forbid"


class CacheConfig(BaseModel):
    """Brief: Name cache sizing and expiry."""

    ttl_seconds: float = Field(default=DEFAULT_TTL_SECONDS, gt=0)
    maxsize: int = Field(default=DEFAULT_MAXSIZE, ge=1)
    cleanup_interval_seconds: float = Field(default=DEFAULT_CLEANUP_INTERVAL_SECONDS, gt=0)

    class Config:
        extra = "forbid"


class ProxyConfig(BaseModel):
    """Brief: Complete doh-relay configuration.

    Example:
        >>> cfg = ProxyConfig(listen={"port": 5353})
        >>> cfg.listen.port, cfg.upstream.resolved_hostname()
        (5353, 'cloudflare-dns.com.')
    """

    listen: ListenConfig = Field(default_factory=ListenConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    bootstrap: BootstrapConfig = Field(default_factory=BootstrapConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "forbid"
