"""Screen composition: places legend, load, labels and bar cells on a canvas."""

from rich.style import Style
from rich.text import Text

from cpubars.layout import Layout
from cpubars.models import CATEGORIES, Category
from cpubars.render import CellBuffer

LOAD_PREFIX = "  load: "
LOAD_COLOR = "white"

Pixel = tuple[str, str | None, str | None]
EMPTY: Pixel = (" ", None, None)


def _color(category: Category | None) -> str | None:
    return category.color if category is not None else None


class Canvas:
    """A rows x cols grid of characters with foreground/background colors."""

    def __init__(self, rows: int, cols: int) -> None:
        self.rows = max(0, rows)
        self.cols = max(0, cols)
        self._pixels: list[list[Pixel]] = [[EMPTY] * self.cols for _ in range(self.rows)]

    def __getitem__(self, key: tuple[int, int]) -> Pixel:
        """Return the (char, fore, back) pixel at ``(row, col)``."""
        row, col = key
        return self._pixels[row][col]

    def set(self, row: int, col: int, char: str, fore: str | None = None, back: str | None = None) -> None:
        """Set one cell; writes outside the canvas are clipped."""
        if 0 <= row < self.rows and 0 <= col < self.cols:
            self._pixels[row][col] = (char, fore, back)

    def put(self, row: int, col: int, text: str, fore: str | None = None, back: str | None = None) -> int:
        """Write ``text`` starting at ``col`` and return the column after it."""
        for offset, char in enumerate(text):
            self.set(row, col + offset, char, fore, back)
        return col + len(text)

    def row_text(self, row: int) -> str:
        """Characters of ``row`` without their colors."""
        return "".join(pixel[0] for pixel in self._pixels[row])

    def to_lines(self) -> list[Text]:
        """
        Convert the canvas into styled lines.

        Adjacent cells with the same colors are emitted as a single span. A
        blank cell shows no foreground, so it joins the current run whatever
        its own foreground color.
        """
        lines: list[Text] = []
        for pixels in self._pixels:
            line = Text(no_wrap=True, overflow="crop")
            run: list[str] = []
            run_fore: str | None = None
            run_back: str | None = None
            for char, fore, back in pixels:
                if char == " " and run:
                    fore = run_fore
                if run and (fore, back) != (run_fore, run_back):
                    line.append("".join(run), _style(run_fore, run_back))
                    run = []
                if not run:
                    run_fore, run_back = fore, back
                run.append(char)
            if run:
                line.append("".join(run), _style(run_fore, run_back))
            lines.append(line)
        return lines


def _style(fore: str | None, back: str | None) -> Style | None:
    if fore is None and back is None:
        return None
    return Style(color=fore, bgcolor=back)


def draw_legend(canvas: Canvas) -> None:
    """Draw the color key on the top row."""
    col = 0
    for category in CATEGORIES:
        col = canvas.put(0, col, "  ", back=category.color)
        col = canvas.put(0, col, f" {category.label} ")


def draw_load(canvas: Canvas, load_avg: tuple[float, float, float]) -> None:
    """Draw the load average at the right end of the top row."""
    figures = "{:0.2f} {:0.2f} {:0.2f}".format(*load_avg)
    col = canvas.cols - len(figures) - len(LOAD_PREFIX)
    col = canvas.put(0, col, LOAD_PREFIX, fore=LOAD_COLOR)
    canvas.put(0, col, figures)


def draw_labels(canvas: Canvas, layout: Layout) -> None:
    """Draw each pane's label rows below its bars."""
    for pane in layout.panes:
        for row, labels in enumerate(layout.labels):
            canvas.put(canvas.rows - pane.start + row, 0, labels[pane.barpos:pane.barpos + pane.width])


def draw_bars(canvas: Canvas, layout: Layout, cells: CellBuffer) -> None:
    """Draw the bar cells of every pane, growing upwards from the labels."""
    for pane in layout.panes:
        for length in range(layout.bar_length):
            row = canvas.rows - pane.start - length - 1
            for col in range(pane.width):
                cell = cells[pane.barpos + col, length]
                canvas.set(row, col, cell.char, _color(cell.fore), _color(cell.back))


def compose_screen(
    layout: Layout,
    cells: CellBuffer | None,
    load_avg: tuple[float, float, float] | None,
    rows: int,
    cols: int,
) -> list[Text]:
    """Build the full screen for one frame."""
    canvas = Canvas(rows, cols)
    draw_legend(canvas)
    if load_avg is not None:
        draw_load(canvas, load_avg)
    draw_labels(canvas, layout)
    if cells is not None:
        draw_bars(canvas, layout, cells)
    return canvas.to_lines()
