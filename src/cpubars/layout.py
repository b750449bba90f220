"""Bar and pane geometry for cpubars.

Geometry is described in bar terms rather than screen terms: a bar has a
*position* across the width of the chart (a column) and cells along its
*length* (rows, counted up from the bottom). If the bars are too many for
one screen width, they are wrapped into panes that are stacked vertically.
"""

import logging
from dataclasses import dataclass

from cpubars.models import StatsSnapshot

logger = logging.getLogger(__name__)

# Legend/load line plus one spacer row.
HEADER_ROWS = 2
AGGREGATE_WIDTH = 3
AGGREGATE_LABEL = "avg"
# Per-CPU bars start after the aggregate bar and a one column gap.
FIRST_BAR_POSITION = AGGREGATE_WIDTH + 1


@dataclass(slots=True, frozen=True)
class Bar:
    """One bar of the chart. ``cpu`` is None for the aggregate bar."""

    position: int
    width: int
    cpu: int | None

    @property
    def is_aggregate(self) -> bool:
        """True for the bar that shows all CPUs combined."""
        return self.cpu is None

    @property
    def label(self) -> str:
        """Text printed under the bar: ``avg`` or the CPU number."""
        return AGGREGATE_LABEL if self.cpu is None else str(self.cpu)


@dataclass(slots=True, frozen=True)
class Pane:
    """
    A screen-width slice of the chart.

    ``start`` is the distance in rows from the bottom of the screen to the
    pane's first label row; the pane's bars grow upwards from just above it.
    ``barpos`` is the first bar position in the pane and ``width`` the
    number of positions it shows.
    """

    start: int
    barpos: int
    width: int


@dataclass(slots=True, frozen=True)
class Layout:
    """Complete geometry for one CPU population and terminal size."""

    bars: tuple[Bar, ...]
    panes: tuple[Pane, ...]
    bar_length: int
    bar_width: int
    label_rows: int
    labels: tuple[str, ...]
    vertical_labels: bool


def label_width(max_index: int) -> int:
    """Number of characters needed to print any CPU index up to ``max_index``."""
    return len(str(max_index))


def _place_labels(bars: list[Bar], bar_width: int, rows: int) -> tuple[str, ...]:
    grid = [[" "] * bar_width for _ in range(rows)]
    for bar in bars:
        text = bar.label
        if rows == 1 or bar.is_aggregate:
            grid[0][bar.position:bar.position + len(text)] = list(text)
        else:
            for row, char in enumerate(text[:rows]):
                grid[row][bar.position] = char
    return tuple("".join(row) for row in grid)


def plan_layout(snapshot: StatsSnapshot, rows: int, cols: int) -> Layout:
    """
    Lay out one bar per online CPU, plus the aggregate bar, on a terminal.

    Labels run horizontally below the bars when every label fits side by
    side; otherwise they are written vertically, one digit per row. If even
    single-column bars do not fit, the chart wraps into several panes.
    """
    online = snapshot.online_cpus()
    count = len(online)
    length = label_width(snapshot.max_index)
    usable = cols - FIRST_BAR_POSITION

    bars = [Bar(position=0, width=AGGREGATE_WIDTH, cpu=None)]
    panes: list[Pane]

    if (length + 1) * count < usable:
        vertical = False
        label_rows = 1
        panes = [Pane(start=1, barpos=0, width=0)]
        bar_length = max(0, rows - 1 - HEADER_ROWS)
        for i, cpu in enumerate(online):
            bars.append(Bar(position=FIRST_BAR_POSITION + i * (length + 1), width=length, cpu=cpu))
    else:
        vertical = True
        label_rows = length
        pad = 0
        panes = [Pane(start=length, barpos=0, width=0)]
        bar_length = max(0, rows - length - HEADER_ROWS)

        if count * 2 < usable:
            pad = 1
        elif count >= usable and cols >= 2:
            pane_width = cols - 1
            num_panes = -(-(FIRST_BAR_POSITION + count) // pane_width)
            pane_length = (rows - HEADER_ROWS) // num_panes
            panes = [
                Pane(
                    start=(num_panes - i - 1) * pane_length + length,
                    barpos=i * pane_width,
                    width=pane_width,
                )
                for i in range(num_panes)
            ]
            bar_length = max(0, pane_length - length)

        for i, cpu in enumerate(online):
            bars.append(Bar(position=FIRST_BAR_POSITION + i * (pad + 1), width=1, cpu=cpu))

    bar_width = bars[-1].position + bars[-1].width
    last = panes[-1]
    panes[-1] = Pane(start=last.start, barpos=last.barpos, width=bar_width - last.barpos)

    logger.info(
        "Layout: %d bars, %d pane(s), bar length %d, %s labels",
        len(bars),
        len(panes),
        bar_length,
        "vertical" if vertical else "horizontal",
    )
    return Layout(
        bars=tuple(bars),
        panes=tuple(panes),
        bar_length=bar_length,
        bar_width=bar_width,
        label_rows=label_rows,
        labels=_place_labels(bars, bar_width, label_rows),
        vertical_labels=vertical,
    )
