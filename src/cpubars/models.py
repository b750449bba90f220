"""Data models for cpubars."""

from dataclasses import dataclass, field
from enum import IntEnum


class Category(IntEnum):
    """CPU time classes, in stacking order (bottom of a bar first)."""

    NICE = 0
    USER = 1
    SYS = 2
    IOWAIT = 3
    IRQ = 4
    SOFTIRQ = 5

    @property
    def label(self) -> str:
        """Short name used in the legend and as the counter field name."""
        return self.name.lower()

    @property
    def color(self) -> str:
        """Display color of this category."""
        return CATEGORY_COLORS[self]


CATEGORY_COLORS: dict[Category, str] = {
    Category.NICE: "green",
    Category.USER: "blue",
    Category.SYS: "red",
    Category.IOWAIT: "cyan",
    Category.IRQ: "magenta",
    Category.SOFTIRQ: "yellow",
}

CATEGORIES: tuple[Category, ...] = tuple(Category)


@dataclass(slots=True, frozen=True)
class CpuCounters:
    """Accumulated tick counts for one CPU (or the aggregate of all CPUs)."""

    online: bool = False
    nice: int = 0
    user: int = 0
    sys: int = 0
    iowait: int = 0
    irq: int = 0
    softirq: int = 0

    def ticks(self, category: Category) -> int:
        """Return the tick count for a category."""
        return getattr(self, category.label)

    def values(self) -> tuple[int, ...]:
        """Return all tick counts in category order."""
        return tuple(self.ticks(category) for category in CATEGORIES)


OFFLINE = CpuCounters()


@dataclass(slots=True)
class StatsSnapshot:
    """
    Point-in-time read of all CPU counters.

    For a raw snapshot ``wall_ticks`` is the wall clock in clock ticks; for
    a delta it is the number of wall ticks elapsed between the two samples.
    """

    online_count: int
    max_index: int
    wall_ticks: int
    aggregate: CpuCounters
    per_cpu: list[CpuCounters] = field(default_factory=list)

    def online_cpus(self) -> list[int]:
        """Indexes of the online CPUs, ascending."""
        return [index for index, cpu in enumerate(self.per_cpu) if cpu.online]


Delta = StatsSnapshot
