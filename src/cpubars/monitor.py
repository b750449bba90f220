"""Counter sampling engine for cpubars."""

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from types import TracebackType
from typing import IO

import psutil

from cpubars.models import Delta, StatsSnapshot
from cpubars.stats import (
    CounterSourceError,
    parse_cpuset_max,
    parse_load_average,
    parse_stat,
    sets_equal,
    subtract,
)

logger = logging.getLogger(__name__)

STAT_PATH = "/proc/stat"
LOADAVG_PATH = "/proc/loadavg"
POSSIBLE_PATH = "/sys/devices/system/cpu/possible"


def _open(path: str) -> IO[str]:
    try:
        return open(path, encoding="ascii", errors="replace")
    except OSError as exc:
        raise CounterSourceError(f"failed to open {path}: {exc.strerror}") from exc


class CounterSource:
    """
    Reads raw CPU counters and the load average from the operating system.

    Both files are opened once and re-read from the start on every call, so a
    missing /proc surfaces at construction time rather than mid-display.
    """

    def __init__(
        self,
        stat_path: str = STAT_PATH,
        loadavg_path: str = LOADAVG_PATH,
        possible_path: str = POSSIBLE_PATH,
        clock: Callable[[], float] = time.time,
        clock_ticks: int | None = None,
    ) -> None:
        """
        Initialize the CounterSource.

        Args:
            stat_path: Per-CPU counter file.
            loadavg_path: Load average file.
            possible_path: CPU list naming every CPU the system can bring online.
            clock: Wall clock returning seconds.
            clock_ticks: Counter ticks per second. Defaults to SC_CLK_TCK.
        """
        self._stat_path = stat_path
        self._loadavg_path = loadavg_path
        self._clock = clock
        self._clock_ticks = clock_ticks or os.sysconf("SC_CLK_TCK")
        self._cpu_count = self._read_possible(possible_path) + 1
        self._stat_file = _open(stat_path)
        try:
            self._loadavg_file = _open(loadavg_path)
        except CounterSourceError:
            self._stat_file.close()
            raise

    @staticmethod
    def _read_possible(path: str) -> int:
        try:
            with open(path, encoding="ascii") as possible:
                return parse_cpuset_max(possible.read())
        except FileNotFoundError:
            count = psutil.cpu_count(logical=True) or 1
            logger.info("%s not found, assuming %d CPUs", path, count)
            return count - 1
        except OSError as exc:
            raise CounterSourceError(f"failed to read {path}: {exc.strerror}") from exc

    @property
    def cpu_count(self) -> int:
        """Number of per-CPU slots in every snapshot."""
        return self._cpu_count

    def cpu_population_hint(self) -> int:
        """Highest CPU index this system can bring online."""
        return self._cpu_count - 1

    def wall_ticks(self) -> int:
        """Current wall clock time in counter ticks."""
        return int(self._clock() * self._clock_ticks)

    def _reread(self, handle: IO[str], path: str) -> str:
        try:
            handle.seek(0)
            return handle.read()
        except OSError as exc:
            raise CounterSourceError(f"failed to read {path}: {exc.strerror}") from exc

    def read_counters(self) -> str:
        """Return the raw counter text."""
        return self._reread(self._stat_file, self._stat_path)

    def read_load_average(self) -> str:
        """Return the raw load average text."""
        return self._reread(self._loadavg_file, self._loadavg_path)

    def read_snapshot(self) -> StatsSnapshot:
        """Read and parse the counters, stamped with the current wall clock."""
        # On kernels prior to 2.6.37 this read is slow on large systems
        # because updating IRQ counts is slow.
        text = self.read_counters()
        return parse_stat(text, self._cpu_count, self.wall_ticks())

    def close(self) -> None:
        """Close the counter files."""
        self._stat_file.close()
        self._loadavg_file.close()

    def __enter__(self) -> "CounterSource":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


@dataclass(slots=True)
class Sample:
    """Result of one sampling tick."""

    delta: Delta
    topology_changed: bool
    load_avg: tuple[float, float, float]


class CpuMonitor:
    """
    Samples a CounterSource and turns consecutive snapshots into deltas.

    Keeps the previous raw snapshot and the previous delta between calls;
    each call to ``sample`` rotates them. All snapshots are immutable once
    built, so a delta never shares storage with its operands.
    """

    def __init__(self, source: CounterSource, poll_rate: float = 0.5) -> None:
        """
        Initialize the CpuMonitor and take the baseline snapshot.

        Args:
            source: Where counters are read from.
            poll_rate: How often the driver should sample (in seconds).
        """
        self._source = source
        self.poll_rate = poll_rate
        self._before = source.read_snapshot()
        self._previous_delta = subtract(self._before, self._before)

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate. Raises ValueError unless it is positive."""
        if not value > 0:
            raise ValueError(f"poll rate must be positive, got {value!r}")
        self._poll_rate = value

    @property
    def baseline(self) -> Delta:
        """The delta the current layout should be built from."""
        return self._previous_delta

    def sample(self) -> Sample:
        """Read new counters and return the delta against the previous read."""
        after = self._source.read_snapshot()
        delta = subtract(after, self._before)
        changed = not sets_equal(delta, self._previous_delta)
        if changed:
            logger.info(
                "Online CPU set changed: %d online, max index %d",
                delta.online_count,
                delta.max_index,
            )
        load_avg = parse_load_average(self._source.read_load_average())

        self._before = after
        self._previous_delta = delta
        return Sample(delta=delta, topology_changed=changed, load_avg=load_avg)
