"""Shared fixtures: fake /proc and /sys files for cpubars tests."""

from pathlib import Path

import pytest

from cpubars.monitor import CounterSource


def stat_line(name: str, user: int = 0, nice: int = 0, sys: int = 0, idle: int = 0, *extra: int) -> str:
    """Build one /proc/stat counter line."""
    fields = [user, nice, sys, idle, *extra]
    return f"{name} " + " ".join(str(value) for value in fields)


def stat_text(*lines: str) -> str:
    return "\n".join([*lines, "intr 12345 0 0", "ctxt 987654", "btime 1700000000", ""])


class FakeProc:
    """Writable stand-ins for /proc/stat, /proc/loadavg and the possible-CPU list."""

    def __init__(self, root: Path, possible: str = "0-3") -> None:
        self.stat = root / "stat"
        self.loadavg = root / "loadavg"
        self.possible = root / "possible"
        self.now = 1000.0
        self.possible.write_text(possible + "\n")
        self.loadavg.write_text("0.52 0.58 0.59 1/389 12345\n")
        self.write_stat(
            stat_line("cpu", 400, 0, 200, 1000, 0, 0, 0),
            *(stat_line(f"cpu{i}", 100, 0, 50, 250, 0, 0, 0) for i in range(4)),
        )

    def write_stat(self, *lines: str) -> None:
        self.stat.write_text(stat_text(*lines))

    def clock(self) -> float:
        return self.now

    def source(self, clock_ticks: int = 100) -> CounterSource:
        return CounterSource(
            stat_path=str(self.stat),
            loadavg_path=str(self.loadavg),
            possible_path=str(self.possible),
            clock=self.clock,
            clock_ticks=clock_ticks,
        )


@pytest.fixture
def fake_proc(tmp_path: Path) -> FakeProc:
    return FakeProc(tmp_path)
