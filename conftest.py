"""Shared test configuration: golden program records and VM logging."""

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import processor
import pytest
import yaml

REQUIRED_KEYS = ("program", "expect")


def pytest_configure(config: Any) -> None:
    """Configure the tests."""
    config.addinivalue_line(
        "markers",
        "golden_test(pattern): parameterize test with YAML program records matching pattern",
    )


def _iter_marker_patterns(node: Any) -> Iterator[str]:
    """Yield pattern strings from golden_test markers on `node`."""
    for m in node.iter_markers(name="golden_test"):
        if m.args:
            yield m.args[0]
        else:
            yield "golden/*.yaml"


def _load_record(p: Path) -> dict[str, Any]:
    """Load one golden record; problems are reported through `__yaml_load_error__`."""
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        return {"__yaml_load_error__": str(e), "__path__": str(p)}
    if not isinstance(data, dict):
        return {"__yaml_load_error__": "record is not a mapping", "__path__": str(p)}

    missing = [k for k in REQUIRED_KEYS if k not in data]
    if missing:
        data["__yaml_load_error__"] = f"missing keys: {', '.join(missing)}"
    else:
        try:
            bytes.fromhex("".join(str(data["program"]).split()))
        except ValueError as e:
            data["__yaml_load_error__"] = f"program is not hex words: {e}"
    data.setdefault("__path__", str(p))
    data.setdefault("__name__", p.name)
    return data


def pytest_generate_tests(metafunc: Any) -> None:
    """Generate tests (parametrization) from YAML golden files."""
    if "golden" not in metafunc.fixturenames:
        return

    patterns: list[str] = list(_iter_marker_patterns(metafunc.definition))
    if not patterns:
        patterns = ["golden/*.yaml"]

    root = Path(metafunc.config.rootpath)

    files: list[Path] = []
    for pat in patterns:
        files.extend(sorted(root.glob(pat)))

    if not files:
        return

    metafunc.parametrize("golden", [_load_record(p) for p in files], ids=[p.stem for p in files])


@pytest.fixture
def vm_log(tmp_path: Path) -> Iterator[Path]:
    """Route debug logging to a temporary processor.log and detach it afterwards."""
    log = tmp_path / "processor.log"
    processor.init_logging(logfile=str(log), debug=True, console=False)
    yield log
    root = logging.getLogger()
    for h in list(root.handlers):
        h.close()
        root.removeHandler(h)
