"""Configuration loading tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from config import DEFAULTS, ConfigError, load_config


def test_defaults() -> None:
    cfg = load_config(None)
    assert cfg == DEFAULTS
    assert cfg is not DEFAULTS


def test_dict_overlay_and_coercion() -> None:
    cfg = load_config({"cycles_per_second": "500", "seed": "7", "shift_uses_vy": 1})
    assert cfg["cycles_per_second"] == 500
    assert cfg["seed"] == 7
    assert cfg["shift_uses_vy"] is True
    assert cfg["timer_hz"] == 60


def test_yaml_file(tmp_path: Path) -> None:
    p = tmp_path / "vm.yaml"
    p.write_text("tick_limit: 42\nmemory_increments_i: true\n", encoding="utf-8")
    cfg = load_config(str(p))
    assert cfg["tick_limit"] == 42
    assert cfg["memory_increments_i"] is True


def test_missing_file() -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config("/nonexistent/vm.yaml")


def test_non_mapping_file(tmp_path: Path) -> None:
    p = tmp_path / "vm.yaml"
    p.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(str(p))


@pytest.mark.parametrize(
    "overrides",
    [
        {"cycles_per_second": 0},
        {"timer_hz": -1},
        {"tick_limit": -5},
        {"pause_tick": -1},
        {"cycles_per_second": "fast"},
        {"lenient_log": "yes"},
        {"turbo": True},
    ],
)
def test_invalid_values(overrides: dict) -> None:
    with pytest.raises(ConfigError):
        load_config(overrides)


def test_unsupported_input() -> None:
    with pytest.raises(ConfigError):
        load_config(42)  # type: ignore[arg-type]
