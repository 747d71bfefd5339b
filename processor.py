"""Processor (Datapath + ControlUnit + Scheduler) and CLI wrapper.

Provides the CHIP-8 VM state, the fetch-decode-execute loop, timer pacing
and logging initialization. Windowed rendering, audio and device polling
belong to the host; the CLI here is a headless runner.
"""

from __future__ import annotations

import logging
import random
import sys
import threading
import time
from pathlib import Path
from typing import Any, Callable

from config import ConfigError, load_config
from isa import (
    ADDR_MASK,
    FONT_BASE,
    FONTSET,
    INSTR_SIZE,
    MEM_SIZE,
    NUM_KEYS,
    NUM_REGISTERS,
    PROGRAM_START,
    SCREEN_HEIGHT,
    SCREEN_WIDTH,
    STACK_DEPTH,
    Fields,
    OpCode,
    decode_instr,
    identify,
    mnemonic,
)

LOGFILE = "processor.log"


def init_logging(logfile: str = LOGFILE, debug: bool = False, console: bool = False) -> None:
    """Configure root logger to write to `logfile`.

    If debug=True set DEBUG level. If console=True also echo logs to stdout.
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    lvl = logging.DEBUG if debug else logging.CRITICAL
    root.setLevel(lvl)

    if debug:
        file_fmt = "%(levelname)s %(name)s:%(filename)s:%(lineno)d %(message)s"
    else:
        file_fmt = "%(levelname)-5s %(message)s"

    fh = logging.FileHandler(logfile, mode="w", encoding="utf-8")
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter(file_fmt))
    root.addHandler(fh)

    if debug and console:
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(lvl)
        ch.setFormatter(logging.Formatter("%(levelname)5s %(message)s"))
        root.addHandler(ch)


# ---------- Errors ----------
class VMError(Exception):
    """Fatal interpreter condition. Aborts the current cycle."""


class UnknownInstruction(VMError):
    """Raised when an instruction word matches no defined form."""

    def __init__(self, pc: int, word: int) -> None:
        self.pc = pc
        self.word = word
        super().__init__(f"unknown instruction 0x{word:04X} at 0x{pc:03X}")


class StackOverflow(VMError):
    """Raised by CALL when all 16 stack levels are in use."""

    def __init__(self, pc: int) -> None:
        self.pc = pc
        super().__init__(f"stack overflow at 0x{pc:03X}")


class StackUnderflow(VMError):
    """Raised by RET with an empty stack."""

    def __init__(self, pc: int) -> None:
        self.pc = pc
        super().__init__(f"stack underflow at 0x{pc:03X}")


class ImageTooLarge(VMError):
    """Raised when a program image does not fit above PROGRAM_START."""

    def __init__(self, size: int, capacity: int) -> None:
        self.size = size
        self.capacity = capacity
        super().__init__(f"program image of {size} bytes exceeds {capacity} available")


# ---------- Peripherals ----------
class Framebuffer:
    """64x32 monochrome pixel grid with XOR drawing."""

    width: int
    height: int
    pixels: bytearray

    def __init__(self, width: int = SCREEN_WIDTH, height: int = SCREEN_HEIGHT) -> None:
        self.width = width
        self.height = height
        self.pixels = bytearray(width * height)

    def clear(self) -> None:
        self.pixels[:] = bytes(len(self.pixels))

    def _index(self, x: int, y: int) -> int:
        return (y % self.height) * self.width + (x % self.width)

    def get(self, x: int, y: int) -> bool:
        return bool(self.pixels[self._index(x, y)])

    def flip(self, x: int, y: int) -> bool:
        """XOR one pixel. Return True if it went from on to off."""
        idx = self._index(x, y)
        was_on = self.pixels[idx]
        self.pixels[idx] = was_on ^ 1
        return was_on == 1

    def draw_sprite(self, x: int, y: int, rows: bytes | bytearray) -> bool:
        """XOR an 8-pixel-wide sprite with its top-left corner at (x, y).

        Coordinates wrap around both edges. Returns the collision flag.
        """
        x0 = x % self.width
        y0 = y % self.height
        collision = False
        for dy, row in enumerate(rows):
            for bit in range(8):
                if row & (0x80 >> bit) and self.flip(x0 + bit, y0 + dy):
                    collision = True
        return collision

    def lit_count(self) -> int:
        return sum(self.pixels)

    def rows(self) -> list[list[bool]]:
        """Read-only copy of the grid as rows of booleans (for renderers)."""
        w = self.width
        return [[bool(p) for p in self.pixels[r * w : (r + 1) * w]] for r in range(self.height)]

    def render_text(self, on: str = "#", off: str = ".") -> str:
        return "\n".join("".join(on if p else off for p in row) for row in self.rows())


class Keypad:
    """Input snapshot: which of the 16 logical keys are currently held.

    The host calls press/release; the control unit only reads.
    """

    def __init__(self) -> None:
        self._pressed = [False] * NUM_KEYS

    def press(self, key: int) -> None:
        self._pressed[key & 0xF] = True

    def release(self, key: int) -> None:
        self._pressed[key & 0xF] = False

    def release_all(self) -> None:
        self._pressed = [False] * NUM_KEYS

    def is_pressed(self, key: int) -> bool:
        return self._pressed[key & 0xF]

    def pressed_keys(self) -> set[int]:
        return {k for k, down in enumerate(self._pressed) if down}


class Timers:
    """Delay and sound timers.

    Guarded by a lock: they are the only state shared with a host timer
    thread, if the host runs one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._delay = 0
        self._sound = 0

    @property
    def delay(self) -> int:
        with self._lock:
            return self._delay

    @delay.setter
    def delay(self, value: int) -> None:
        with self._lock:
            self._delay = value & 0xFF

    @property
    def sound(self) -> int:
        with self._lock:
            return self._sound

    @sound.setter
    def sound(self, value: int) -> None:
        with self._lock:
            self._sound = value & 0xFF

    @property
    def sound_active(self) -> bool:
        """True while the host should play the tone."""
        return self.sound > 0

    def tick(self) -> None:
        """One 60 Hz decrement of both timers, stopping at zero."""
        with self._lock:
            if self._delay > 0:
                self._delay -= 1
            if self._sound > 0:
                self._sound -= 1

    def reset(self) -> None:
        with self._lock:
            self._delay = 0
            self._sound = 0


# ---------- VM state ----------
class Datapath:
    """Datapath (memory + registers + stack + peripherals) for the VM."""

    memory: bytearray
    V: bytearray
    I: int  # noqa: E741
    PC: int
    SP: int
    stack: list[int]

    framebuffer: Framebuffer
    timers: Timers
    keypad: Keypad

    # key-wait state: register index receiving the key, or None
    awaiting_key: int | None
    held_at_wait: set[int]

    instr_addr: int  # address of the instruction being executed
    tick: int
    timer_ticks: int  # timer ticks applied by the virtual clock in run()
    tick_limit: int
    pause_tick: int | None
    shift_uses_vy: bool
    memory_increments_i: bool
    lenient_log: bool
    rng: random.Random

    def __init__(
        self,
        program: bytes = b"",
        tick_limit: int = 100000,
        pause_tick: int | None = None,
        seed: int | None = None,
        shift_uses_vy: bool = False,
        memory_increments_i: bool = False,
        lenient_log: bool = False,
        keypad: Keypad | None = None,
    ) -> None:
        """Initialize Datapath state and load `program` at PROGRAM_START."""
        self.framebuffer = Framebuffer()
        self.timers = Timers()
        self.keypad = keypad if keypad is not None else Keypad()

        self.tick_limit = int(tick_limit)
        self.pause_tick = pause_tick
        self.shift_uses_vy = bool(shift_uses_vy)
        self.memory_increments_i = bool(memory_increments_i)
        self.lenient_log = bool(lenient_log)
        self.rng = random.Random(seed)

        self.reset()
        if program:
            self.load_image(program)

    def reset(self) -> None:
        """Power-on state: cleared memory with glyphs, PC at 0x200, empty stack."""
        self.memory = bytearray(MEM_SIZE)
        self.memory[FONT_BASE : FONT_BASE + len(FONTSET)] = FONTSET
        self.V = bytearray(NUM_REGISTERS)
        self.I = 0
        self.PC = PROGRAM_START
        self.SP = 0
        self.stack = [0] * STACK_DEPTH
        self.framebuffer.clear()
        self.timers.reset()
        self.awaiting_key = None
        self.held_at_wait = set()
        self.instr_addr = PROGRAM_START
        self.tick = 0
        self.timer_ticks = 0

    def load_image(self, image: bytes | bytearray) -> None:
        """Copy a program image verbatim into memory at PROGRAM_START."""
        capacity = MEM_SIZE - PROGRAM_START
        if len(image) > capacity:
            logging.debug("load_image: %d bytes do not fit (%d available)", len(image), capacity)
            raise ImageTooLarge(len(image), capacity)
        self.memory[PROGRAM_START : PROGRAM_START + len(image)] = image
        logging.debug("Datapath: loaded %d bytes at 0x%03X", len(image), PROGRAM_START)

    def read_byte(self, addr: int) -> int:
        return self.memory[addr & ADDR_MASK]

    def write_byte(self, addr: int, value: int) -> None:
        self.memory[addr & ADDR_MASK] = value & 0xFF

    # --- call-stack helpers (return-address stack) ---
    def call_push(self, value: int) -> None:
        """Push a return address. Raises StackOverflow when full."""
        if self.SP >= STACK_DEPTH:
            logging.debug("call_push: stack full (SP=%d)", self.SP)
            raise StackOverflow(self.instr_addr)
        self.stack[self.SP] = value & 0xFFFF
        self.SP += 1
        logging.debug("call_push: 0x%03X (SP=%d)", value & 0xFFFF, self.SP)

    def call_pop(self) -> int:
        """Pop a return address. Raises StackUnderflow when empty."""
        if self.SP == 0:
            logging.debug("call_pop: stack empty")
            raise StackUnderflow(self.instr_addr)
        self.SP -= 1
        logging.debug("call_pop: 0x%03X (SP=%d)", self.stack[self.SP], self.SP)
        return self.stack[self.SP]


# ---------- Control ----------
class ControlUnit:
    """Control unit implementing the FETCH-DECODE-EXEC loop for the Datapath."""

    dp: Datapath

    def __init__(self, dp: Datapath, cycles_per_second: int = 700, timer_hz: int = 60) -> None:
        """Create a ControlUnit bound to `dp`."""
        self.dp = dp
        self.cycles_per_second = int(cycles_per_second)
        self.timer_hz = int(timer_hz)
        self._handlers: dict[OpCode, Callable[[Fields], None]] = {
            OpCode.SYS: self._sys,
            OpCode.CLS: self._cls,
            OpCode.RET: self._ret,
            OpCode.JP: self._jp,
            OpCode.CALL: self._call,
            OpCode.SE_BYTE: self._se_byte,
            OpCode.SNE_BYTE: self._sne_byte,
            OpCode.SE_REG: self._se_reg,
            OpCode.LD_BYTE: self._ld_byte,
            OpCode.ADD_BYTE: self._add_byte,
            OpCode.LD_REG: self._ld_reg,
            OpCode.OR: self._or,
            OpCode.AND: self._and,
            OpCode.XOR: self._xor,
            OpCode.ADD_REG: self._add_reg,
            OpCode.SUB: self._sub,
            OpCode.SHR: self._shr,
            OpCode.SUBN: self._subn,
            OpCode.SHL: self._shl,
            OpCode.SNE_REG: self._sne_reg,
            OpCode.LD_I: self._ld_i,
            OpCode.JP_V0: self._jp_v0,
            OpCode.RND: self._rnd,
            OpCode.DRW: self._drw,
            OpCode.SKP: self._skp,
            OpCode.SKNP: self._sknp,
            OpCode.LD_VX_DT: self._ld_vx_dt,
            OpCode.LD_VX_K: self._ld_vx_k,
            OpCode.LD_DT_VX: self._ld_dt_vx,
            OpCode.LD_ST_VX: self._ld_st_vx,
            OpCode.ADD_I_VX: self._add_i_vx,
            OpCode.LD_F_VX: self._ld_f_vx,
            OpCode.LD_B_VX: self._ld_b_vx,
            OpCode.LD_MEM_VX: self._ld_mem_vx,
            OpCode.LD_VX_MEM: self._ld_vx_mem,
        }

    def _log_step(self, state: str, instr: str) -> None:
        # skip verbose per-step logs in lenient mode to reduce log size
        if self.dp.lenient_log:
            return
        dp = self.dp
        left = f"STATE: {state:<8} TICK: {dp.tick:5d} PC: {dp.PC:03X} I: {dp.I:03X} SP: {dp.SP:2d} "
        right = f"DT: {dp.timers.delay:3d} ST: {dp.timers.sound:3d} V: {dp.V.hex(' ').upper()}\tINSTR: {instr}"
        logging.debug(left + right)

    def step(self) -> OpCode | None:
        """Run one cycle.

        Returns the executed form, or None if the cycle was spent waiting
        for a key. Raises VMError subclasses on fatal conditions.
        """
        dp = self.dp
        if dp.awaiting_key is not None:
            self._poll_key()
            dp.tick += 1
            return None

        pc = dp.PC
        fields = decode_instr(dp.memory, pc)
        opcode = identify(fields)
        if opcode is None:
            logging.debug("Unknown instruction 0x%04X at 0x%03X", fields.word, pc & ADDR_MASK)
            raise UnknownInstruction(pc & ADDR_MASK, fields.word)

        self._log_step("RUNNING", mnemonic(fields))
        dp.instr_addr = pc & ADDR_MASK
        dp.PC = (pc + INSTR_SIZE) & 0xFFFF
        try:
            self._handlers[opcode](fields)
        except VMError:
            # the faulting cycle is aborted: PC stays on the faulting instruction
            dp.PC = pc
            raise
        dp.tick += 1
        return opcode

    def run(self) -> tuple[int, str]:
        """Execute until the tick limit or pause tick.

        Timers advance on a virtual clock derived from the cycle count.
        Returns (ticks, state).
        """
        dp = self.dp
        while dp.tick < dp.tick_limit:
            if dp.pause_tick is not None and dp.tick == dp.pause_tick:
                self._log_step("PAUSED", "pause")
                return dp.tick, "paused"
            self.step()
            due = dp.tick * self.timer_hz // self.cycles_per_second
            while dp.timer_ticks < due:
                dp.timers.tick()
                dp.timer_ticks += 1

        state = "waiting" if dp.awaiting_key is not None else "stopped"
        return dp.tick, state

    def _poll_key(self) -> None:
        """Resolve a pending LD Vx, K if a newly pressed key is available."""
        dp = self.dp
        x = dp.awaiting_key
        if x is None:
            return
        pressed = dp.keypad.pressed_keys()
        # keys released since the wait began become eligible again
        dp.held_at_wait &= pressed
        fresh = sorted(pressed - dp.held_at_wait)
        if not fresh:
            return
        dp.V[x] = fresh[0]
        dp.awaiting_key = None
        dp.held_at_wait = set()
        logging.debug("LD V%X, K -> key %X pressed, resuming", x, fresh[0])

    def _skip_if(self, cond: bool) -> None:
        if cond:
            self.dp.PC = (self.dp.PC + INSTR_SIZE) & 0xFFFF

    # --- flow control ---
    def _sys(self, f: Fields) -> None:
        logging.debug("SYS 0x%03X ignored", f.nnn)

    def _cls(self, f: Fields) -> None:
        self.dp.framebuffer.clear()

    def _ret(self, f: Fields) -> None:
        self.dp.PC = self.dp.call_pop()

    def _jp(self, f: Fields) -> None:
        self.dp.PC = f.nnn

    def _call(self, f: Fields) -> None:
        self.dp.call_push(self.dp.PC)
        self.dp.PC = f.nnn

    def _jp_v0(self, f: Fields) -> None:
        self.dp.PC = f.nnn + self.dp.V[0]

    # --- conditional skips ---
    def _se_byte(self, f: Fields) -> None:
        self._skip_if(self.dp.V[f.x] == f.kk)

    def _sne_byte(self, f: Fields) -> None:
        self._skip_if(self.dp.V[f.x] != f.kk)

    def _se_reg(self, f: Fields) -> None:
        self._skip_if(self.dp.V[f.x] == self.dp.V[f.y])

    def _sne_reg(self, f: Fields) -> None:
        self._skip_if(self.dp.V[f.x] != self.dp.V[f.y])

    def _skp(self, f: Fields) -> None:
        self._skip_if(self.dp.keypad.is_pressed(self.dp.V[f.x] & 0xF))

    def _sknp(self, f: Fields) -> None:
        self._skip_if(not self.dp.keypad.is_pressed(self.dp.V[f.x] & 0xF))

    # --- register loads and ALU ---
    def _ld_byte(self, f: Fields) -> None:
        self.dp.V[f.x] = f.kk

    def _add_byte(self, f: Fields) -> None:
        self.dp.V[f.x] = (self.dp.V[f.x] + f.kk) & 0xFF

    def _ld_reg(self, f: Fields) -> None:
        self.dp.V[f.x] = self.dp.V[f.y]

    def _or(self, f: Fields) -> None:
        self.dp.V[f.x] |= self.dp.V[f.y]

    def _and(self, f: Fields) -> None:
        self.dp.V[f.x] &= self.dp.V[f.y]

    def _xor(self, f: Fields) -> None:
        self.dp.V[f.x] ^= self.dp.V[f.y]

    # flag-producing forms write VF last so the flag wins when x == F
    def _add_reg(self, f: Fields) -> None:
        v = self.dp.V
        total = v[f.x] + v[f.y]
        v[f.x] = total & 0xFF
        v[0xF] = 1 if total > 0xFF else 0

    def _sub(self, f: Fields) -> None:
        v = self.dp.V
        vx, vy = v[f.x], v[f.y]
        v[f.x] = (vx - vy) & 0xFF
        v[0xF] = 1 if vx >= vy else 0

    def _subn(self, f: Fields) -> None:
        v = self.dp.V
        vx, vy = v[f.x], v[f.y]
        v[f.x] = (vy - vx) & 0xFF
        v[0xF] = 1 if vy >= vx else 0

    def _shr(self, f: Fields) -> None:
        v = self.dp.V
        src = v[f.y] if self.dp.shift_uses_vy else v[f.x]
        v[f.x] = src >> 1
        v[0xF] = src & 0x01

    def _shl(self, f: Fields) -> None:
        v = self.dp.V
        src = v[f.y] if self.dp.shift_uses_vy else v[f.x]
        v[f.x] = (src << 1) & 0xFF
        v[0xF] = (src >> 7) & 0x01

    def _rnd(self, f: Fields) -> None:
        self.dp.V[f.x] = self.dp.rng.randrange(256) & f.kk

    # --- index register and memory ---
    def _ld_i(self, f: Fields) -> None:
        self.dp.I = f.nnn

    def _add_i_vx(self, f: Fields) -> None:
        self.dp.I = (self.dp.I + self.dp.V[f.x]) & 0xFFFF

    def _ld_f_vx(self, f: Fields) -> None:
        self.dp.I = FONT_BASE + 5 * self.dp.V[f.x]

    def _ld_b_vx(self, f: Fields) -> None:
        dp = self.dp
        value = dp.V[f.x]
        dp.write_byte(dp.I, value // 100)
        dp.write_byte(dp.I + 1, (value // 10) % 10)
        dp.write_byte(dp.I + 2, value % 10)

    def _ld_mem_vx(self, f: Fields) -> None:
        dp = self.dp
        for r in range(f.x + 1):
            dp.write_byte(dp.I + r, dp.V[r])
        if dp.memory_increments_i:
            dp.I = (dp.I + f.x + 1) & 0xFFFF

    def _ld_vx_mem(self, f: Fields) -> None:
        dp = self.dp
        for r in range(f.x + 1):
            dp.V[r] = dp.read_byte(dp.I + r)
        if dp.memory_increments_i:
            dp.I = (dp.I + f.x + 1) & 0xFFFF

    # --- display ---
    def _drw(self, f: Fields) -> None:
        dp = self.dp
        sprite = bytes(dp.read_byte(dp.I + r) for r in range(f.n))
        collision = dp.framebuffer.draw_sprite(dp.V[f.x], dp.V[f.y], sprite)
        dp.V[0xF] = 1 if collision else 0

    # --- timers and keys ---
    def _ld_vx_dt(self, f: Fields) -> None:
        self.dp.V[f.x] = self.dp.timers.delay

    def _ld_dt_vx(self, f: Fields) -> None:
        self.dp.timers.delay = self.dp.V[f.x]
        logging.debug("DT <- %d", self.dp.V[f.x])

    def _ld_st_vx(self, f: Fields) -> None:
        self.dp.timers.sound = self.dp.V[f.x]
        logging.debug("ST <- %d", self.dp.V[f.x])

    def _ld_vx_k(self, f: Fields) -> None:
        dp = self.dp
        dp.awaiting_key = f.x
        dp.held_at_wait = dp.keypad.pressed_keys()
        logging.debug("LD V%X, K -> waiting for key", f.x)


class Scheduler:
    """Paces a ControlUnit against the wall clock.

    Instruction dispatch runs at `cycles_per_second`, the timers at
    `timer_hz`, independently of each other. Timers keep ticking while
    the VM waits for a key.
    """

    def __init__(
        self,
        cu: ControlUnit,
        cycles_per_second: int | None = None,
        timer_hz: int | None = None,
    ) -> None:
        """Rates default to the ones the control unit was built with."""
        self.cu = cu
        self.cycles_per_second = int(cu.cycles_per_second if cycles_per_second is None else cycles_per_second)
        self.timer_hz = int(cu.timer_hz if timer_hz is None else timer_hz)
        self._cycle_debt = 0.0
        self._timer_debt = 0.0
        self._running = False
        self._stop_requested = False

    def _run_cycles(self, n: int) -> int:
        """Step up to `n` cycles, ending early at the boundary after stop()."""
        for done in range(n):
            if self._stop_requested:
                return done
            self.cu.step()
        return n

    def advance(self, elapsed: float) -> int:
        """Run the cycles and timer ticks due for `elapsed` seconds.

        Cycles are spread evenly between timer ticks. A stop() issued while
        cycles are running ends the batch before the next instruction.
        Returns cycles run.
        """
        self._stop_requested = False
        if elapsed <= 0:
            return 0
        self._cycle_debt += elapsed * self.cycles_per_second
        self._timer_debt += elapsed * self.timer_hz
        cycles = int(self._cycle_debt)
        ticks = int(self._timer_debt)
        self._cycle_debt -= cycles
        self._timer_debt -= ticks

        if ticks == 0:
            return self._run_cycles(cycles)

        timers = self.cu.dp.timers
        ran = 0
        for t in range(ticks):
            batch = cycles * (t + 1) // ticks - cycles * t // ticks
            done = self._run_cycles(batch)
            ran += done
            if done < batch:
                logging.debug("scheduler: stopped after %d of %d cycles", ran, cycles)
                break
            timers.tick()
        return ran

        timers = self.cu.dp.timers
        for t in range(ticks):
            batch = cycles * (t + 1) // ticks - cycles * t // ticks
            for _ in range(batch):
                self.cu.step()
            timers.tick()
        return cycles

    def run_realtime(
        self,
        duration: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        on_frame: Callable[[Datapath], None] | None = None,
    ) -> int:
        """Drive the VM from `clock` until `duration` elapses or stop() is called.

        `on_frame` is invoked after every batch so the host can render,
        play sound and update the keypad. Returns total cycles run.
        """
        self._running = True
        start = last = clock()
        frame = 1.0 / self.timer_hz
        total = 0
        try:
            while self._running:
                now = clock()
                total += self.advance(now - last)
                last = now
                if on_frame is not None:
                    on_frame(self.cu.dp)
                if duration is not None and now - start >= duration:
                    break
                sleep(frame)
        finally:
            self._running = False
        return total

    def stop(self) -> None:
        self._running = False
        self._stop_requested = True


# ---------- Public API ----------
def build_machine(program: bytes, config: dict[str, Any] | None = None) -> ControlUnit:
    """Create a Datapath + ControlUnit pair from a program image and normalized config."""
    cfg = load_config(config)
    dp = Datapath(
        program,
        tick_limit=cfg["tick_limit"],
        pause_tick=cfg["pause_tick"],
        seed=cfg["seed"],
        shift_uses_vy=cfg["shift_uses_vy"],
        memory_increments_i=cfg["memory_increments_i"],
        lenient_log=cfg["lenient_log"],
    )
    return ControlUnit(dp, cycles_per_second=cfg["cycles_per_second"], timer_hz=cfg["timer_hz"])


def run_bytes(program: bytes, config: dict[str, Any] | None = None) -> tuple[Datapath, int, str]:
    """Run VM on given image and config and return (datapath, ticks, state)."""
    cu = build_machine(program, config)
    ticks, state = cu.run()
    return cu.dp, ticks, state


def parse_keys(spec: str) -> list[int]:
    """Parse a comma-separated list of hex key names like "1,A,f"."""
    keys: list[int] = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        key = int(part, 16)
        if not 0 <= key < NUM_KEYS:
            msg = f"Bad key: {part!r}"
            raise ValueError(msg)
        keys.append(key)
    return keys


# ---------- CLI ----------
if __name__ == "__main__":
    import argparse

    ap = argparse.ArgumentParser(
        description="Headless CHIP-8 runner. Loads a program image at 0x200, runs it "
        "for tick_limit cycles and prints the final screen."
    )
    ap.add_argument("program", help="program image (.ch8).")
    ap.add_argument("--config", help="path to yaml config", default=None)
    ap.add_argument("--keys", help="hex keys held down for the whole run, e.g. 1,A", default="")

    help_debug = "enable debug logging to logfile (detailed per-step state)."
    help_logfile = "path to processor log"
    help_console = "also echo logs to console (only when --debug)"
    ap.add_argument("--debug", action="store_true", help=help_debug)
    ap.add_argument("--logfile", default=LOGFILE, help=help_logfile)
    ap.add_argument("--console", action="store_true", help=help_console)
    args = ap.parse_args()

    init_logging(logfile=args.logfile, debug=args.debug, console=args.console)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print("Bad config:", e)
        sys.exit(2)

    try:
        held = parse_keys(args.keys)
    except ValueError as e:
        print("Bad --keys:", e)
        sys.exit(2)

    code_path = Path(args.program)
    if not code_path.exists():
        print("Program file not found:", args.program)
        sys.exit(2)

    try:
        cu = build_machine(code_path.read_bytes(), cfg)
        for k in held:
            cu.dp.keypad.press(k)
        ticks, state = cu.run()
    except VMError as e:
        logging.debug("VM error: %s", e)
        print("VM error:", e)
        sys.exit(1)

    sys.stdout.write(cu.dp.framebuffer.render_text())
    sys.stdout.write("\n")
    sys.stdout.write("TICKS: " + str(ticks) + " STATE: " + state)
    sys.stdout.write("\n")
