"""Bar rendering: from tick deltas to per-cell color decisions."""

from typing import NamedTuple

from cpubars.layout import Layout
from cpubars.models import CATEGORIES, Category, CpuCounters, Delta

# Each cell is divided into this many steps so cutoffs stay integers.
SUBCELL_RESOLUTION = 256
# Partial-fill glyphs are available in eighths of a cell.
GLYPH_STEPS = 8
# Index 0 is a blank cell; index k fills the lower k/8 of the cell.
GLYPHS: tuple[str, ...] = (" ",) + tuple(chr(0x2580 + step) for step in range(1, GLYPH_STEPS))

# Segment index of the implicit idle region above the last category.
IDLE = len(CATEGORIES)


class Cell(NamedTuple):
    """
    What to draw in one character cell.

    ``glyph`` indexes GLYPHS. The glyph is drawn in ``fore`` over ``back``;
    None stands for the terminal's default color.
    """

    glyph: int = 0
    fore: Category | None = None
    back: Category | None = None

    @property
    def char(self) -> str:
        """Character drawn for this cell."""
        return GLYPHS[self.glyph]


BLANK = Cell()


def _color(segment: int) -> Category | None:
    return CATEGORIES[segment] if segment < IDLE else None


def _solid(segment: int) -> Cell:
    return Cell(back=_color(segment))


class CellBuffer:
    """Cells for every bar position, each a column of ``length`` cells."""

    def __init__(self, width: int, length: int) -> None:
        self.width = width
        self.length = length
        self._columns: list[list[Cell]] = [[BLANK] * length for _ in range(width)]

    def __getitem__(self, key: tuple[int, int]) -> Cell:
        """Return the cell at ``(barpos, cell)``."""
        barpos, cell = key
        return self._columns[barpos][cell]

    def column(self, barpos: int) -> list[Cell]:
        """Cells of bar ``barpos``, bottom first."""
        return self._columns[barpos]

    def set_column(self, barpos: int, cells: list[Cell]) -> None:
        """Replace the cells of bar ``barpos`` with a copy of ``cells``."""
        self._columns[barpos] = list(cells)


def compute_cutoffs(counters: CpuCounters, cells: int, scale: int) -> list[int]:
    """
    Return the upper boundary of each category's segment, in subcells.

    The boundaries are cumulative in category order and clamped to the bar,
    and one final boundary at the very top of the bar closes the idle
    segment, so the result is always non-decreasing and ends at the extent.
    """
    extent = cells * SUBCELL_RESOLUTION
    cutoffs: list[int] = []
    cumulative = 0
    for category in CATEGORIES:
        cumulative += counters.ticks(category)
        cutoffs.append(min(cumulative * extent // scale, extent))
    cutoffs.append(extent)
    return cutoffs


def probe_fine_glyphs(encoding: str | None) -> bool:
    """Check whether the partial block glyphs can be written in ``encoding``."""
    if not encoding:
        return False
    try:
        "".join(GLYPHS).encode(encoding)
    except (UnicodeEncodeError, LookupError):
        return False
    return True


class BarRenderer:
    """
    Turns deltas into cell buffers.

    In fine mode a cell shared by two segments is drawn with a partial block
    glyph; in coarse mode it takes the color of whichever segment covers
    more of it.
    """

    def __init__(self, fine: bool = True) -> None:
        self._fine = fine

    @property
    def fine(self) -> bool:
        """Whether partial cells are drawn with block glyphs."""
        return self._fine

    def render(self, delta: Delta, layout: Layout) -> CellBuffer | None:
        """Render every bar of ``layout``; None if no time has elapsed."""
        if delta.wall_ticks <= 0:
            return None

        buffer = CellBuffer(layout.bar_width, layout.bar_length)
        for bar in layout.bars:
            if bar.cpu is None:
                counters = delta.aggregate
                # The aggregate line sums every CPU.
                scale = delta.wall_ticks * delta.online_count
            else:
                counters = delta.per_cpu[bar.cpu]
                scale = delta.wall_ticks

            if counters.online and scale > 0:
                column = self.render_bar(counters, layout.bar_length, scale)
            else:
                column = [BLANK] * layout.bar_length

            for offset in range(bar.width):
                buffer.set_column(bar.position + offset, column)
        return buffer

    def render_bar(self, counters: CpuCounters, length: int, scale: int) -> list[Cell]:
        """Return the cells of one bar, bottom first."""
        cutoffs = compute_cutoffs(counters, length, scale)
        cells: list[Cell] = []
        segment = 0
        for index in range(length):
            lo = index * SUBCELL_RESOLUTION
            hi = lo + SUBCELL_RESOLUTION
            while cutoffs[segment] <= lo:
                segment += 1

            if cutoffs[segment] >= hi:
                cells.append(_solid(segment))
                continue

            # Coverage of every segment that overlaps this cell.
            shares: list[tuple[int, int]] = []
            start = lo
            for candidate in range(segment, IDLE + 1):
                end = min(cutoffs[candidate], hi)
                shares.append((end - start, candidate))
                start = end
                if cutoffs[candidate] >= hi:
                    break

            top = sorted(shares, key=lambda share: (-share[0], share[1]))[:2]
            cells.append(self._blend(top))
        return cells

    def _blend(self, top: list[tuple[int, int]]) -> Cell:
        if not self._fine:
            return _solid(top[0][1])

        (lower_share, lower), (upper_share, upper) = sorted(top, key=lambda share: share[1])
        total = lower_share + upper_share
        level = (2 * lower_share * GLYPH_STEPS + total) // (2 * total)
        if level >= GLYPH_STEPS:
            return _solid(lower)
        if level <= 0:
            return _solid(upper)
        return Cell(glyph=level, fore=_color(lower), back=_color(upper))
