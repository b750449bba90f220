"""cpubars - Main Textual application."""

import argparse
import logging
import math
import signal
import sys
from types import FrameType

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Static

from cpubars.layout import Layout, plan_layout
from cpubars.monitor import CounterSource, CpuMonitor
from cpubars.render import BarRenderer, CellBuffer, probe_fine_glyphs
from cpubars.screen import compose_screen
from cpubars.stats import CounterSourceError

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.5

HELP_NOTES = """\
If your bars look funky, use -a or specify LANG=C.

For kernels prior to 2.6.37, using a small delay on a large system can
induce significant system time overhead.
"""


class BarChart(Static):
    """Full-screen widget showing the composed bar chart."""

    DEFAULT_CSS = """
    BarChart {
        width: 1fr;
        height: 1fr;
    }
    """

    def show(self, lines: list[Text]) -> None:
        """Replace the displayed frame."""
        self.update(Text("\n", no_wrap=True, overflow="crop").join(lines))


class CpuBarsApp(App):
    """Main cpubars application."""

    TITLE = "cpubars"

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
    ]

    def __init__(self, source: CounterSource, delay: float = DEFAULT_DELAY, fine: bool = True) -> None:
        """
        Initialize the CpuBarsApp.

        Args:
            source: Counter source to sample.
            delay: Seconds between samples.
            fine: Draw partial cells with block glyphs.
        """
        super().__init__()
        self._monitor = CpuMonitor(source, poll_rate=delay)
        self._bar_renderer = BarRenderer(fine=fine)
        self._chart_layout: Layout | None = None
        self._chart_cells: CellBuffer | None = None
        self._load_avg: tuple[float, float, float] | None = None
        # Set from event/signal context, consumed by the sampling tick.
        self._resize_pending = False
        self._exit_pending = False

    @property
    def chart_layout(self) -> Layout | None:
        """The current bar layout."""
        return self._chart_layout

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield BarChart(id="bars")

    def on_mount(self) -> None:
        """Draw the initial layout and start sampling."""
        self._relayout()
        self._redraw()
        self.set_interval(self._monitor.poll_rate, self._tick)

    def on_resize(self, event: events.Resize) -> None:
        """Note the resize; the layout is rebuilt on the next sample."""
        self._resize_pending = True

    def request_exit(self, signum: int | None = None, frame: FrameType | None = None) -> None:
        """Ask the app to quit on its next tick. Safe to use as a signal handler."""
        self._exit_pending = True

    def _tick(self) -> None:
        """Sample counters, rebuild the layout if needed, and redraw."""
        if self._exit_pending:
            self._exit_pending = False
            self.action_quit()
            return

        try:
            sample = self._monitor.sample()
        except CounterSourceError as exc:
            logger.error("Sampling failed: %s", exc)
            self.exit(return_code=1, message=f"cpubars: {exc}")
            return

        if self._resize_pending or sample.topology_changed:
            self._resize_pending = False
            self._relayout()

        self._load_avg = sample.load_avg
        cells = self._bar_renderer.render(sample.delta, self._chart_layout)
        if cells is not None:
            self._chart_cells = cells
        self._redraw()

    def _relayout(self) -> None:
        size = self.size
        self._chart_layout = plan_layout(self._monitor.baseline, size.height, size.width)
        # Cells from the old layout no longer line up with the bars.
        self._chart_cells = None

    def _redraw(self) -> None:
        size = self.size
        chart = self.query_one("#bars", BarChart)
        chart.show(compose_screen(self._chart_layout, self._chart_cells, self._load_avg, size.height, size.width))

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self.exit()


def parse_delay(value: str) -> float:
    """argparse type for the delay option: a finite number of seconds above zero."""
    try:
        delay = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError("Delay argument (-d) requires a number") from None
    if not math.isfinite(delay) or delay <= 0:
        raise argparse.ArgumentTypeError("Delay argument (-d) must be a positive number")
    return delay


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser for the ``cpubars`` script."""
    parser = argparse.ArgumentParser(
        prog="cpubars",
        description="Display CPU usage as a bar chart.",
        epilog=HELP_NOTES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-a",
        "--ascii",
        action="store_true",
        help="Use ASCII-only bars (instead of Unicode)",
    )
    parser.add_argument(
        "-d",
        "--delay",
        type=parse_delay,
        default=DEFAULT_DELAY,
        metavar="SECS",
        help="Specify delay between updates (decimals accepted)",
    )
    parser.add_argument(
        "--log-file",
        metavar="PATH",
        help="Write log records to this file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level used with --log-file (default: INFO)",
    )
    return parser


def setup_logging(path: str | None, level: str = "INFO") -> None:
    """Send cpubars log records to ``path``, or nowhere when it is None."""
    package_logger = logging.getLogger("cpubars")
    if path is None:
        # Anything written to stderr would land on top of the chart.
        package_logger.addHandler(logging.NullHandler())
        return
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


def main(argv: list[str] | None = None) -> None:
    """Entry point for cpubars application."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file, args.log_level)

    fine = not args.ascii and probe_fine_glyphs(sys.stdout.encoding)
    logger.info("Starting: delay=%ss, %s rendering", args.delay, "fine" if fine else "coarse")

    try:
        source = CounterSource()
    except CounterSourceError as exc:
        logger.error("Cannot open counters: %s", exc)
        print(f"cpubars: {exc}", file=sys.stderr)
        sys.exit(1)

    with source:
        try:
            app = CpuBarsApp(source, delay=args.delay, fine=fine)
        except CounterSourceError as exc:
            logger.error("Cannot read counters: %s", exc)
            print(f"cpubars: {exc}", file=sys.stderr)
            sys.exit(1)

        previous_sigint = signal.signal(signal.SIGINT, app.request_exit)
        try:
            app.run()
        finally:
            signal.signal(signal.SIGINT, previous_sigint)

    sys.exit(app.return_code or 0)


if __name__ == "__main__":
    main()
