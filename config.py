from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

"""Config loader and validator.

Provides `load_config` which accepts either a path to a YAML file,
a dictionary or None and returns a normalized configuration dict
using DEFAULTS for missing values.
"""


DEFAULTS: dict[str, Any] = {
    "cycles_per_second": 700,
    "timer_hz": 60,
    "tick_limit": 100000,
    "pause_tick": None,
    "seed": None,
    "shift_uses_vy": False,
    "memory_increments_i": False,
    "lenient_log": False,
}

_BOOL_KEYS = ("shift_uses_vy", "memory_increments_i", "lenient_log")


class ConfigError(ValueError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)


def _convert_types(cfg: dict[str, Any]) -> None:
    """Normalize types for configuration values in-place.

    Raises ConfigError on conversion failure.
    """
    try:
        cfg["cycles_per_second"] = int(cfg.get("cycles_per_second", DEFAULTS["cycles_per_second"]))
        cfg["timer_hz"] = int(cfg.get("timer_hz", DEFAULTS["timer_hz"]))
        cfg["tick_limit"] = int(cfg.get("tick_limit", DEFAULTS["tick_limit"]))
        cfg["pause_tick"] = _optional_int(cfg.get("pause_tick"))
        cfg["seed"] = _optional_int(cfg.get("seed"))
    except (TypeError, ValueError) as e:
        msg = f"Bad types in config: {e}"
        raise ConfigError(msg) from e

    # booleans: YAML already yields bool, plain dicts may carry 0/1
    for key in _BOOL_KEYS:
        v = cfg.get(key, DEFAULTS[key])
        if isinstance(v, bool):
            continue
        if isinstance(v, int) and v in (0, 1):
            cfg[key] = bool(v)
            continue
        msg = f"{key} must be boolean"
        raise ConfigError(msg)


def _validate_cfg(cfg: dict[str, Any]) -> None:
    """Perform semantic validation on normalized config dict.

    Raises ConfigError on invalid values.
    """
    unknown = sorted(set(cfg) - set(DEFAULTS))
    if unknown:
        msg = f"Unknown config keys: {', '.join(unknown)}"
        raise ConfigError(msg)

    if cfg["cycles_per_second"] <= 0:
        msg = "cycles_per_second must be positive"
        raise ConfigError(msg)

    if cfg["timer_hz"] <= 0:
        msg = "timer_hz must be positive"
        raise ConfigError(msg)

    if cfg["tick_limit"] < 0:
        msg = "tick_limit must be non-negative"
        raise ConfigError(msg)

    if cfg["pause_tick"] is not None and cfg["pause_tick"] < 0:
        msg = "pause_tick must be non-negative or null"
        raise ConfigError(msg)


def load_config(path_or_dict: str | dict[str, Any] | None = None) -> dict[str, Any]:
    """Load and normalize configuration.

    Accepts:
      - None -> returns DEFAULTS copy
      - dict -> overlay DEFAULTS with provided dict
      - str (path) -> load YAML and overlay DEFAULTS

    Returns a normalized dict or raises ConfigError.
    """
    if path_or_dict is None:
        cfg: dict[str, Any] = dict(DEFAULTS)
    elif isinstance(path_or_dict, dict):
        cfg = dict(DEFAULTS)
        cfg.update(path_or_dict)
    elif isinstance(path_or_dict, str):
        p = Path(path_or_dict)
        if not p.exists():
            msg = f"Config file not found: {path_or_dict}"
            raise ConfigError(msg)
        try:
            with p.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            msg = f"Failed to load config file {path_or_dict}: {e}"
            raise ConfigError(msg) from e
        if not isinstance(data, dict):
            msg = f"Config file {path_or_dict} does not contain a mapping"
            raise ConfigError(msg)
        cfg = dict(DEFAULTS)
        cfg.update(data)
    else:
        msg = "Unsupported config input"
        raise ConfigError(msg)

    # convert types and validate semantics
    _convert_types(cfg)
    _validate_cfg(cfg)

    return cfg
