"""Configuration loading, validation and logging setup for doh-relay."""

from .config_parser import load_config, parse_config
from .config_schema import ProxyConfig

__all__ = ["ProxyConfig", "load_config", "parse_config"]
