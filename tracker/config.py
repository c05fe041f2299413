"""
YAML configuration loader & validator for the market‑data tracker.

* merges the file over ``DEFAULT_CONFIG`` (file wins)
* validates numeric fields up front
* raises early, clear exceptions instead of logging‑and‑continuing

The resulting dict is built once in ``main`` and handed to the connector,
engine and server explicitly; nothing reads configuration from module state.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# defaults                                                                    #
# --------------------------------------------------------------------------- #
DEFAULT_CONFIG: Dict[str, Any] = {
    "exchange": {
        "name": "coindcx",
        "api_base_url": "https://api.coindcx.com",
        "public_base_url": "https://public.coindcx.com",
        "request_timeout_s": 10,
        "max_retries": 3,
        "retry_delay_ms": 1000,
    },
    "refresh": {
        "interval_s": 5,
        "stop_timeout_s": 10,
        # insta‑settlement variant the exchange lists next to BTCINR
        "excluded_markets": ["BTCINR_insta"],
    },
    "server": {
        "host": "localhost",
        "port": 8080,
    },
    "log_level": "info",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _recursive_merge(base: dict, override: dict) -> dict:
    """Non‑destructive deep merge (override wins)."""
    merged = base.copy()
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            merged[k] = _recursive_merge(base[k], v)
        else:
            merged[k] = v
    return merged


def _positive(section: dict, key: str, path: str, *, integer: bool = False, allow_zero: bool = False):
    value = section[key]
    kinds = (int,) if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, kinds):
        raise ValueError(f"{path}.{key} must be {'an integer' if integer else 'a number'}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{path}.{key} must be {'>= 0' if allow_zero else 'positive'}")


# --------------------------------------------------------------------------- #
# public API                                                                  #
# --------------------------------------------------------------------------- #
def validate_config(cfg: dict) -> dict:
    """
    Check a merged config dict; returns it unchanged.

    :raises ValueError
    """
    for section in ("exchange", "refresh", "server"):
        if not isinstance(cfg.get(section), dict):
            raise ValueError(f"Config section '{section}' must be a mapping")

    ex = cfg["exchange"]
    for key in ("name", "api_base_url", "public_base_url"):
        if not isinstance(ex.get(key), str) or not ex[key]:
            raise ValueError(f"exchange.{key} must be a non-empty string")
    ex["api_base_url"] = ex["api_base_url"].rstrip("/")
    ex["public_base_url"] = ex["public_base_url"].rstrip("/")
    _positive(ex, "request_timeout_s", "exchange")
    _positive(ex, "max_retries", "exchange", integer=True, allow_zero=True)
    _positive(ex, "retry_delay_ms", "exchange", integer=True, allow_zero=True)

    rf = cfg["refresh"]
    _positive(rf, "interval_s", "refresh")
    _positive(rf, "stop_timeout_s", "refresh")
    excluded = rf.get("excluded_markets") or []
    if not isinstance(excluded, list) or not all(isinstance(m, str) for m in excluded):
        raise ValueError("refresh.excluded_markets must be a list of market names")
    rf["excluded_markets"] = excluded

    srv = cfg["server"]
    if not isinstance(srv.get("host"), str):
        raise ValueError("server.host must be a string")
    _positive(srv, "port", "server", integer=True)
    if srv["port"] > 65535:
        raise ValueError("server.port must be <= 65535")

    level = str(cfg.get("log_level", "info")).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
    cfg["log_level"] = level
    return cfg


def load_config(path: Optional[str | Path] = None) -> dict:
    """
    Read YAML file, apply defaults, and validate structure.

    :param path: path to config YAML (str or Path); None → defaults only
    :returns: fully‑populated config dict
    :raises FileNotFoundError, ValueError
    """
    raw: dict = {}
    if path is not None:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{path} must contain a YAML mapping")
        logger.debug("Loaded configuration from %s", path)

    cfg = _recursive_merge(copy.deepcopy(DEFAULT_CONFIG), raw)
    return validate_config(cfg)
