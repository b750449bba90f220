"""Tests for cpubars application."""

import logging

import pytest
from conftest import stat_line

from cpubars import app as app_module
from cpubars.app import BarChart, CpuBarsApp, build_parser, main, setup_logging
from cpubars.render import CellBuffer
from cpubars.stats import CounterSourceError


def busy_stat(fake_proc, user_per_cpu: int, cpus=(0, 1, 2, 3)) -> None:
    """Rewrite the fake counters with every listed CPU at ``user_per_cpu``."""
    fake_proc.write_stat(
        stat_line("cpu", user_per_cpu * len(cpus), 0, 200, 1000),
        *(stat_line(f"cpu{i}", user_per_cpu, 0, 50, 250) for i in cpus),
    )


class TestCommandLine:
    """Tests for argument parsing and main()."""

    def test_defaults(self):
        """Test the default delay and rendering mode."""
        args = build_parser().parse_args([])

        assert args.delay == 0.5
        assert not args.ascii
        assert args.log_file is None

    def test_options(self):
        """Test fractional delays and the ASCII flag are accepted."""
        args = build_parser().parse_args(["-a", "-d", "1.5"])

        assert args.ascii
        assert args.delay == 1.5

    def test_invalid_delay(self, capsys):
        """Test a non-numeric delay is a usage error."""
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["-d", "soon"])

        assert exc_info.value.code == 2
        assert "requires a number" in capsys.readouterr().err

    @pytest.mark.parametrize("delay", ["0", "-1", "-0.5", "nan", "inf"])
    def test_non_positive_delay(self, capsys, delay):
        """Test zero, negative and non-finite delays are usage errors."""
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["-d", delay])

        assert exc_info.value.code == 2
        assert "must be a positive number" in capsys.readouterr().err

    def test_small_delay_is_kept(self):
        """Test a short positive delay reaches the parsed options unchanged."""
        args = build_parser().parse_args(["-d", "0.05"])

        assert args.delay == 0.05

    def test_unexpected_arguments(self):
        """Test trailing arguments are rejected."""
        with pytest.raises(SystemExit) as exc_info:
            main(["extra"])

        assert exc_info.value.code == 2

    def test_help(self, capsys):
        """Test help exits cleanly with the usage notes."""
        with pytest.raises(SystemExit) as exc_info:
            main(["-h"])

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "Display CPU usage as a bar chart." in out
        assert "If your bars look funky, use -a or specify LANG=C." in out

    def test_unreadable_counters_exit(self, monkeypatch, capsys):
        """Test a missing counter source is fatal before the UI starts."""

        def broken_source():
            raise CounterSourceError("failed to open /proc/stat: No such file or directory")

        monkeypatch.setattr(app_module, "CounterSource", broken_source)

        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1
        assert "cpubars: failed to open /proc/stat" in capsys.readouterr().err


@pytest.fixture
def package_logger():
    logger = logging.getLogger("cpubars")
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in logger.handlers[len(handlers):]:
        handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


class TestLogging:
    """Tests for setup_logging."""

    def test_log_file(self, tmp_path, package_logger):
        """Test records go to the requested file."""
        path = tmp_path / "cpubars.log"

        setup_logging(str(path), "DEBUG")
        logging.getLogger("cpubars.layout").debug("hello from layout")
        for handler in package_logger.handlers:
            handler.flush()

        assert "hello from layout" in path.read_text()

    def test_no_log_file(self, package_logger):
        """Test a null handler is installed when no file is given."""
        setup_logging(None)

        assert any(isinstance(handler, logging.NullHandler) for handler in package_logger.handlers)


@pytest.mark.asyncio
async def test_app_creation(fake_proc):
    """Test CpuBarsApp can be instantiated."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    assert app.title == "cpubars"
    assert app.chart_layout is None


@pytest.mark.asyncio
async def test_app_compose(fake_proc):
    """Test the app draws an initial layout on mount."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    async with app.run_test(size=(40, 12)) as pilot:
        assert pilot.app.query_one("#bars", BarChart) is not None
        layout = pilot.app.chart_layout
        assert layout is not None
        assert [bar.cpu for bar in layout.bars] == [None, 0, 1, 2, 3]
        assert layout.bar_length == 12 - 3


@pytest.mark.asyncio
async def test_app_quit_binding(fake_proc):
    """Test that 'q' binding triggers quit."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    async with app.run_test(size=(40, 12)) as pilot:
        await pilot.press("q")
        assert pilot.app._exit
    assert app.return_code == 0


@pytest.mark.asyncio
async def test_tick_renders_cells(fake_proc):
    """Test a sample with elapsed time produces cells for the current layout."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    async with app.run_test(size=(40, 12)):
        fake_proc.now += 1.0
        busy_stat(fake_proc, 200)

        app._tick()

        cells = app._chart_cells
        assert isinstance(cells, CellBuffer)
        assert cells.width == app.chart_layout.bar_width
        assert app._load_avg == (0.52, 0.58, 0.59)


@pytest.mark.asyncio
async def test_tick_without_elapsed_time_keeps_frame(fake_proc):
    """Test zero elapsed time leaves the previous cells in place."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    async with app.run_test(size=(40, 12)):
        fake_proc.now += 1.0
        app._tick()
        previous = app._chart_cells
        assert previous is not None

        app._tick()

        assert app._chart_cells is previous


@pytest.mark.asyncio
async def test_topology_change_rebuilds_layout(fake_proc):
    """Test a CPU going offline rebuilds the layout without it."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    async with app.run_test(size=(40, 12)):
        before = app.chart_layout
        fake_proc.now += 1.0
        busy_stat(fake_proc, 100, cpus=(0, 1, 3))

        app._tick()

        assert app.chart_layout is not before
        assert [bar.cpu for bar in app.chart_layout.bars] == [None, 0, 1, 3]


@pytest.mark.asyncio
async def test_same_topology_keeps_layout(fake_proc):
    """Test changing values alone does not rebuild the layout."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    async with app.run_test(size=(40, 12)):
        app._resize_pending = False
        before = app.chart_layout
        fake_proc.now += 1.0
        busy_stat(fake_proc, 150)

        app._tick()

        assert app.chart_layout is before


@pytest.mark.asyncio
async def test_resize_rebuilds_layout(fake_proc):
    """Test a pending resize is consumed by the next tick."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    async with app.run_test(size=(40, 12)):
        before = app.chart_layout
        app._resize_pending = True

        app._tick()

        assert not app._resize_pending
        assert app.chart_layout is not before


@pytest.mark.asyncio
async def test_request_exit(fake_proc):
    """Test an exit request (as from SIGINT) quits on the next tick."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    async with app.run_test(size=(40, 12)) as pilot:
        app.request_exit()
        app._tick()
        await pilot.pause()
        assert app._exit
    assert app.return_code == 0


@pytest.mark.asyncio
async def test_sampling_failure_exits_with_error(fake_proc):
    """Test a counter source failure mid-run ends the app with status 1."""
    app = CpuBarsApp(fake_proc.source(), delay=10)
    async with app.run_test(size=(40, 12)) as pilot:
        fake_proc.loadavg.write_text("garbage\n")
        app._tick()
        await pilot.pause()
    assert app.return_code == 1
