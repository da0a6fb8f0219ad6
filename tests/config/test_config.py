"""Brief: Tests for the pydantic config models and the YAML loader.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

import pytest

from doh_relay.cache import DEFAULT_MAXSIZE, DEFAULT_TTL_SECONDS
from doh_relay.config import ProxyConfig, load_config, parse_config


def test_defaults_match_public_resolver_setup() -> None:
    """Brief: An empty mapping yields the built-in defaults.

    Inputs:
      - None.

    Outputs:
      - None; asserts each section's default values.
    """
    cfg = parse_config({})
    assert (cfg.listen.host, cfg.listen.port) == ("127.0.0.1", 53)
    assert cfg.upstream.url == "https://cloudflare-dns.com/dns-query"
    assert cfg.upstream.method == "POST"
    assert cfg.upstream.content_type == "application/dns-message"
    assert cfg.upstream.verify is True
    assert cfg.upstream.timeout_ms == 5000
    assert (cfg.bootstrap.host, cfg.bootstrap.port) == ("1.1.1.1", 53)
    assert cfg.bootstrap.attempts == 6
    assert cfg.bootstrap.delay_seconds == 1.0
    assert cfg.cache.ttl_seconds == DEFAULT_TTL_SECONDS
    assert cfg.cache.maxsize == DEFAULT_MAXSIZE
    assert cfg.cache.cleanup_interval_seconds == 600
    assert cfg.logging == {}


def test_none_is_treated_as_empty() -> None:
    assert parse_config(None).listen.port == 53


def test_resolved_hostname_from_url_and_override() -> None:
    cfg = ProxyConfig()
    assert cfg.upstream.resolved_hostname() == "cloudflare-dns.com."

    cfg = parse_config(
        {"upstream": {"url": "https://dns.google/dns-query", "hostname": "DNS.Google."}}
    )
    assert cfg.upstream.resolved_hostname() == "dns.google."


def test_method_is_normalized() -> None:
    assert parse_config({"upstream": {"method": "get"}}).upstream.method == "GET"


@pytest.mark.parametrize(
    "bad",
    [
        {"listen": {"port": 70000}},
        {"upstream": {"method": "PUT"}},
        {"upstream": {"url": "ftp://example.com/dns-query"}},
        {"upstream": {"url": "https:///dns-query"}},
        {"upstream": {"timeout_ms": 0}},
        {"bootstrap": {"attempts": 0}},
        {"cache": {"ttl_seconds": -1}},
        {"unknown_section": {}},
        {"listen": {"prot": 5353}},
    ],
)
def test_invalid_values_raise_value_error(bad) -> None:
    with pytest.raises(ValueError) as ei:
        parse_config(bad)
    assert "Invalid configuration" in str(ei.value)


def test_non_mapping_root_rejected() -> None:
    with pytest.raises(ValueError):
        parse_config(["listen"])


def test_load_config_reads_yaml(tmp_path) -> None:
    """Brief: load_config parses a YAML file into ProxyConfig.

    Inputs:
      - tmp_path: directory for the config file.

    Outputs:
      - None; asserts overridden values and untouched defaults.
    """
    path = tmp_path / "config.yaml"
    path.write_text(
        "listen:\n"
        "  host: 0.0.0.0\n"
        "  port: 5353\n"
        "upstream:\n"
        "  url: https://dns.quad9.net/dns-query\n"
        "  headers:\n"
        "    X-Test: '1'\n"
        "bootstrap:\n"
        "  host: 9.9.9.9\n"
        "logging:\n"
        "  level: debug\n"
    )
    cfg = load_config(str(path))
    assert (cfg.listen.host, cfg.listen.port) == ("0.0.0.0", 5353)
    assert cfg.upstream.resolved_hostname() == "dns.quad9.net."
    assert cfg.upstream.headers == {"X-Test": "1"}
    assert cfg.bootstrap.host == "9.9.9.9"
    assert cfg.bootstrap.attempts == 6
    assert cfg.logging == {"level": "debug"}


def test_load_config_missing_file_gives_defaults(tmp_path) -> None:
    assert load_config(str(tmp_path / "absent.yaml")) == ProxyConfig()
    assert load_config(None) == ProxyConfig()


def test_load_config_empty_file_gives_defaults(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(str(path)).listen.port == 53


def test_load_config_invalid_yaml(tmp_path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("listen: [unclosed\n")
    with pytest.raises(ValueError) as ei:
        load_config(str(path))
    assert "Invalid YAML" in str(ei.value)


def test_load_config_schema_violation(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("cache:\n  maxsize: 0\n")
    with pytest.raises(ValueError):
        load_config(str(path))
