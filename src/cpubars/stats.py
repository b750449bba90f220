"""Parsing and differencing of CPU time-accounting counters."""

import logging

from cpubars.models import CATEGORIES, OFFLINE, CpuCounters, Delta, StatsSnapshot

logger = logging.getLogger(__name__)

COUNTER_PREFIX = "cpu"

# /proc/stat field order; idle is read but not displayed.
STAT_FIELDS = ("user", "nice", "sys", "idle", "iowait", "irq", "softirq")
MIN_STAT_FIELDS = 4


class CounterSourceError(OSError):
    """The counter source cannot be opened, read or understood."""


def _is_number(token: str) -> bool:
    # str.isdigit() also accepts superscripts and other scripts' digits.
    return token.isascii() and token.isdigit()


def _leading_numbers(fields: list[str], limit: int) -> list[int]:
    numbers: list[int] = []
    for token in fields[:limit]:
        if not _is_number(token):
            break
        numbers.append(int(token))
    return numbers


def _parse_counters(rest: str) -> CpuCounters | None:
    """Parse the numeric part of a counter line, or None if it is too short."""
    numbers = _leading_numbers(rest.split(), len(STAT_FIELDS))
    if len(numbers) < MIN_STAT_FIELDS:
        return None
    # Older kernels only report user, nice, system and idle.
    numbers += [0] * (len(STAT_FIELDS) - len(numbers))
    values = dict(zip(STAT_FIELDS, numbers))
    del values["idle"]
    return CpuCounters(online=True, **values)


def parse_stat(text: str, cpu_count: int, wall_ticks: int) -> StatsSnapshot:
    """
    Parse the contents of /proc/stat into a snapshot.

    Args:
        text: Raw counter text.
        cpu_count: Number of per-CPU slots (highest possible CPU index + 1).
        wall_ticks: Wall clock reading, in clock ticks, taken with the read.

    Lines that are not counter lines are ignored. A counter line with fewer
    than four numeric fields leaves its CPU offline in this snapshot.
    """
    aggregate = OFFLINE
    per_cpu = [OFFLINE] * cpu_count
    online_count = 0
    max_index = 0

    for line in text.splitlines():
        if not line.startswith(COUNTER_PREFIX):
            continue
        rest = line[len(COUNTER_PREFIX):]

        if not rest or rest[0].isspace():
            counters = _parse_counters(rest)
            if counters is None:
                logger.debug("Skipping short aggregate line: %r", line)
                continue
            aggregate = counters
            continue

        digits = rest.split(maxsplit=1)[0]
        if not _is_number(digits):
            continue
        cpu = int(digits)
        if cpu >= cpu_count:
            continue

        counters = _parse_counters(rest[len(digits):])
        if counters is None:
            logger.debug("Skipping short counter line for cpu%d: %r", cpu, line)
            continue
        if not per_cpu[cpu].online:
            online_count += 1
        per_cpu[cpu] = counters
        max_index = max(max_index, cpu)

    return StatsSnapshot(
        online_count=online_count,
        max_index=max_index,
        wall_ticks=wall_ticks,
        aggregate=aggregate,
        per_cpu=per_cpu,
    )


def _subtract_one(a: CpuCounters, b: CpuCounters) -> CpuCounters:
    if not (a.online and b.online):
        return OFFLINE
    values = {
        category.label: a.ticks(category) - b.ticks(category) for category in CATEGORIES
    }
    if any(value < 0 for value in values.values()):
        # Counter wraparound or a CPU that was hot-unplugged and re-added.
        return OFFLINE
    return CpuCounters(online=True, **values)


def subtract(a: StatsSnapshot, b: StatsSnapshot) -> Delta:
    """
    Return ``a - b`` for a later snapshot ``a`` and an earlier snapshot ``b``.

    A CPU is online in the result iff it is online in both operands and none
    of its counters went backwards.
    """
    per_cpu = [_subtract_one(ca, cb) for ca, cb in zip(a.per_cpu, b.per_cpu)]
    online = [index for index, cpu in enumerate(per_cpu) if cpu.online]
    return StatsSnapshot(
        online_count=len(online),
        max_index=online[-1] if online else 0,
        wall_ticks=a.wall_ticks - b.wall_ticks,
        aggregate=_subtract_one(a.aggregate, b.aggregate),
        per_cpu=per_cpu,
    )


def sets_equal(a: StatsSnapshot, b: StatsSnapshot) -> bool:
    """Test whether ``a`` and ``b`` have the same set of online CPUs."""
    if a.max_index != b.max_index or a.online_count != b.online_count:
        return False
    for index in range(a.max_index + 1):
        if _is_online(a, index) != _is_online(b, index):
            return False
    return True


def _is_online(snapshot: StatsSnapshot, index: int) -> bool:
    return index < len(snapshot.per_cpu) and snapshot.per_cpu[index].online


def parse_cpuset_max(text: str) -> int:
    """Return the highest CPU number in a kernel CPU list such as ``0-3,8``."""
    highest = 0
    for part in text.replace(",", " ").replace("-", " ").split():
        if not _is_number(part):
            raise CounterSourceError(f"invalid cpu set: {text.strip()!r}")
        highest = max(highest, int(part))
    return highest


def parse_load_average(text: str) -> tuple[float, float, float]:
    """Parse the 1, 5 and 15 minute load averages from /proc/loadavg."""
    fields = text.split()
    try:
        one, five, fifteen = (float(value) for value in fields[:3])
    except ValueError as exc:
        raise CounterSourceError(f"failed to parse load average: {text.strip()!r}") from exc
    return (one, five, fifteen)
