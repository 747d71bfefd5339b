"""Wall-clock pacing tests: dispatch rate and timer rate are independent."""

from __future__ import annotations

import itertools

from isa import OpCode
from processor import ControlUnit, Datapath, Scheduler, build_machine

LOOP = b"\x12\x00"  # JP 0x200


def test_advance_interleaves_cycles_between_timer_ticks() -> None:
    # LD V0..V3, DT
    dp = Datapath(bytes.fromhex("F007F107F207F307"))
    dp.timers.delay = 2
    sched = Scheduler(ControlUnit(dp), cycles_per_second=4, timer_hz=2)
    assert sched.advance(1.0) == 4
    assert list(dp.V[0:4]) == [2, 2, 1, 1]
    assert dp.timers.delay == 0


def test_advance_rates_are_independent() -> None:
    dp = Datapath(LOOP)
    dp.timers.delay = 100
    dp.timers.sound = 5
    sched = Scheduler(ControlUnit(dp), cycles_per_second=700, timer_hz=60)
    sched.advance(0.5)
    sched.advance(0.5)
    assert dp.tick == 700
    assert dp.timers.delay == 40
    assert dp.timers.sound == 0


def test_advance_carries_fractions() -> None:
    dp = Datapath(LOOP)
    sched = Scheduler(ControlUnit(dp), cycles_per_second=3, timer_hz=60)
    assert sched.advance(0.5) == 1
    assert sched.advance(0.5) == 2
    assert dp.tick == 3


def test_advance_ignores_non_positive_elapsed() -> None:
    dp = Datapath(LOOP)
    sched = Scheduler(ControlUnit(dp))
    assert sched.advance(0) == 0
    assert sched.advance(-1.0) == 0
    assert dp.tick == 0


def test_run_realtime_with_fake_clock() -> None:
    dp = Datapath(LOOP)
    sched = Scheduler(ControlUnit(dp), cycles_per_second=600, timer_hz=60)
    times = iter([0.0, 0.5, 1.0])
    sleeps: list[float] = []
    frames: list[int] = []

    total = sched.run_realtime(
        duration=1.0,
        clock=times.__next__,
        sleep=sleeps.append,
        on_frame=lambda d: frames.append(d.tick),
    )
    assert total == 600
    assert frames == [300, 600]
    assert sleeps == [1.0 / 60]


def test_stop_from_frame_callback() -> None:
    dp = Datapath(LOOP)
    sched = Scheduler(ControlUnit(dp), cycles_per_second=600, timer_hz=60)
    clock = itertools.count(0.0, 0.25)

    total = sched.run_realtime(clock=clock.__next__, sleep=lambda s: None, on_frame=lambda d: sched.stop())
    assert total == 150


def test_rates_default_to_control_unit() -> None:
    cu = build_machine(LOOP, {"cycles_per_second": 480, "timer_hz": 30})
    sched = Scheduler(cu)
    assert (sched.cycles_per_second, sched.timer_hz) == (480, 30)
    assert sched.advance(1.0) == 480
    assert cu.dp.tick == 480


class StoppingControlUnit(ControlUnit):
    """Calls Scheduler.stop() from inside the fifth cycle."""

    sched: Scheduler

    def step(self) -> OpCode | None:
        op = super().step()
        if self.dp.tick == 5:
            self.sched.stop()
        return op


def test_stop_ends_batch_at_instruction_boundary() -> None:
    dp = Datapath(LOOP)
    dp.timers.delay = 10
    cu = StoppingControlUnit(dp)
    sched = Scheduler(cu, cycles_per_second=600, timer_hz=60)
    cu.sched = sched
    assert sched.advance(1.0) == 5
    assert dp.tick == 5
    assert dp.timers.delay == 10
    # a later call is not affected by the earlier stop
    assert sched.advance(0.1) == 60
