"""Golden-test runner for CHIP-8 programs.

Each golden YAML record describes a program image (hex words loaded at
0x200 plus optional extra segments), an optional config, key events keyed
by cycle number and a cycle count. The runner steps the control unit and
compares registers, memory, pixels and raised errors with the expectations.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from isa import PROGRAM_START
from processor import VMError, build_machine


def _addr(key: Any) -> int:
    return key if isinstance(key, int) else int(str(key), 0)


def _words(text: str) -> bytes:
    return bytes.fromhex("".join(str(text).split()))


def build_image(golden: dict[str, Any]) -> bytes:
    """Assemble the program image: `program` at 0x200, `at` segments elsewhere."""
    image = bytearray(_words(golden.get("program", "")))
    for key, code in (golden.get("at") or {}).items():
        offset = _addr(key) - PROGRAM_START
        chunk = _words(code)
        if len(image) < offset + len(chunk):
            image.extend(bytes(offset + len(chunk) - len(image)))
        image[offset : offset + len(chunk)] = chunk
    return bytes(image)


@pytest.mark.golden_test("golden/*.yaml")
def test_golden_program(golden: Any, vm_log: Path) -> None:  # noqa: C901
    """Run one golden record and compare the machine state."""
    assert "__yaml_load_error__" not in golden, golden.get("__yaml_load_error__")

    cu = build_machine(build_image(golden), golden.get("config"))
    dp = cu.dp

    events: dict[int, list[dict[str, Any]]] = {}
    for ev in golden.get("keys") or []:
        events.setdefault(int(ev["tick"]), []).append(ev)

    error: VMError | None = None
    try:
        for _ in range(int(golden.get("cycles", 1))):
            for ev in events.get(dp.tick, []):
                if "press" in ev:
                    dp.keypad.press(int(str(ev["press"]), 16))
                if "release" in ev:
                    dp.keypad.release(int(str(ev["release"]), 16))
            cu.step()
    except VMError as e:
        error = e

    if dp.tick:
        assert "STATE: RUNNING" in vm_log.read_text(encoding="utf-8")

    expect = golden.get("expect") or {}

    if "error" in expect:
        assert error is not None, f"expected {expect['error']}, nothing was raised"
        assert type(error).__name__ == expect["error"]
        if "error_pc" in expect:
            assert error.pc == expect["error_pc"]  # type: ignore[attr-defined]
        if "error_word" in expect:
            assert error.word == expect["error_word"]  # type: ignore[attr-defined]
    else:
        assert error is None, f"unexpected VM error: {error}"

    if "ticks" in expect:
        assert dp.tick == expect["ticks"], f"ticks mismatch: got {dp.tick} expected {expect['ticks']}"
    if "pc" in expect:
        assert dp.PC == expect["pc"], f"PC mismatch: got 0x{dp.PC:03X} expected 0x{expect['pc']:03X}"
    if "i" in expect:
        assert dp.I == expect["i"], f"I mismatch: got 0x{dp.I:03X} expected 0x{expect['i']:03X}"
    if "sp" in expect:
        assert dp.SP == expect["sp"]
    if "waiting" in expect:
        assert (dp.awaiting_key is not None) == expect["waiting"]

    for reg, val in (expect.get("v") or {}).items():
        r = _addr(reg)
        assert dp.V[r] == val, f"V{r:X} mismatch: got {dp.V[r]} expected {val}"

    for key, values in (expect.get("memory") or {}).items():
        base = _addr(key)
        got = list(dp.memory[base : base + len(values)])
        assert got == list(values), f"memory[0x{base:03X}] mismatch: got {got} expected {values}"

    fb = dp.framebuffer
    if "lit" in expect:
        assert fb.lit_count() == expect["lit"], f"lit pixels:\n{fb.render_text()}"
    for x, y in expect.get("pixels_on") or []:
        assert fb.get(x, y), f"pixel ({x}, {y}) should be on"
    for x, y in expect.get("pixels_off") or []:
        assert not fb.get(x, y), f"pixel ({x}, {y}) should be off"
