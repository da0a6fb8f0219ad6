"""Read and validate the YAML configuration file.

Brief:
  ``load_config`` reads a YAML file with ``yaml.safe_load`` and hands the
  mapping to ``parse_config``, which validates it into ``ProxyConfig``. Both
  raise ValueError with a readable message on invalid input so the CLI can
  report it and exit.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .config_schema import ProxyConfig


def parse_config(cfg: Optional[Dict[str, Any]]) -> ProxyConfig:
    """Brief: Validate a parsed configuration mapping.

    Inputs:
      - cfg: mapping loaded from YAML (None means all defaults).

    Outputs:
      - ProxyConfig

    Raises:
      - ValueError: when the root is not a mapping or a value is invalid.

    Example:
      >>> parse_config({"listen": {"port": 5353}}).listen.port
      5353
    """
    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")
    try:
        return ProxyConfig(**cfg)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def load_config(config_path: Optional[str]) -> ProxyConfig:
    """Brief: Read, parse and validate a YAML config file.

    Inputs:
      - config_path: path to the YAML file. None, or a path that does not
        exist, yields the built-in defaults.

    Outputs:
      - ProxyConfig

    Raises:
      - ValueError: on YAML syntax errors or schema violations.
    """
    if not config_path or not os.path.exists(config_path):
        return parse_config({})

    with open(config_path, "r") as f:
        try:
            cfg = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc
    return parse_config(cfg)
