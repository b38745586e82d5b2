"""gputop - Main Textual application."""

import math
from collections.abc import Callable

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.css.query import NoMatches
from textual.widget import Widget
from textual.widgets import DataTable, Footer, Static

from gputop.config import ChartConfig, Config
from gputop.device import DeviceQuery
from gputop.models import DeviceSnapshot, ProcessRecord
from gputop.monitor import SnapshotBuilder, SnapshotSlot, TelemetryMonitor
from gputop.ringbuffer import MetricHistory, RingBuffer
from gputop.table import ProcessTableModel, SortKey
from gputop.viewport import FrameInput, ViewportTransform, ViewTransformController

MIB = 1024 * 1024


def format_mib(size: int) -> str:
    """Format bytes as whole MiB."""
    return f"{size // MIB:,} MiB"


def format_memory(used: int | None) -> str:
    """Format a process's GPU memory, which the driver may not report."""
    if used is None:
        return "Unavailable"
    return format_mib(used)


class DeviceStats(Static):
    """Header widget showing device identity and current readings."""

    DEFAULT_CSS = """
    DeviceStats {
        height: auto;
        min-height: 4;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize DeviceStats."""
        super().__init__(*args, **kwargs)
        self._snapshot: DeviceSnapshot | None = None
        self._error: str | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_device_info(), id="device-info"),
            Static(self._get_readings(), id="device-readings"),
        )

    def update_snapshot(self, snapshot: DeviceSnapshot) -> None:
        """Show the readings from a new snapshot."""
        self._snapshot = snapshot
        self._refresh_display()

    def show_error(self, message: str) -> None:
        """Switch to the no-data state after sampling stopped."""
        self._error = message
        self._refresh_display()

    def _refresh_display(self) -> None:
        try:
            self.query_one("#device-info", Static).update(self._get_device_info())
            self.query_one("#device-readings", Static).update(self._get_readings())
        except NoMatches:
            pass  # Not mounted yet

    def _get_device_info(self) -> str:
        if self._error is not None:
            return f"[bold red]No data:[/] {self._error}"
        snap = self._snapshot
        if snap is None:
            return "Waiting for data..."
        return (
            f"[bold]{snap.name}[/]\n"
            f"Driver {snap.driver_version}  CUDA {snap.runtime_version}"
        )

    def _get_readings(self) -> str:
        snap = self._snapshot
        if snap is None or self._error is not None:
            return ""
        mem = snap.memory
        fans = " ".join(f"{speed}%" for speed in snap.fan_speeds) or "n/a"
        return (
            f"Temp [bold]{snap.temperature}°C[/]  Power [bold]{snap.power_usage / 1000:.1f} W[/]"
            f"  Fans {fans}\n"
            f"Mem {format_mib(mem.used)} / {format_mib(mem.total)}"
            f"  [dim]({format_mib(mem.free)} free)[/]"
        )


class MetricChart(Widget):
    """
    Rolling line chart of one metric with mouse pan and zoom.

    The X axis is the sample index into the ring buffer. Until the user
    pans or zooms, the view follows the whole history and the metric's
    ceiling; press r to return to that view.
    """

    CHARS = " ▁▂▃▄▅▆▇█"
    LEVELS_PER_ROW = 8

    DEFAULT_CSS = """
    MetricChart {
        width: 1fr;
        height: 100%;
        border: round $primary;
    }
    """

    def __init__(
        self,
        title: str,
        buffer: RingBuffer[float],
        ceiling: Callable[[], float],
        color: str = "white",
        chart_config: ChartConfig | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        chart_config = chart_config or ChartConfig()
        self.border_title = title
        self._buffer = buffer
        self._ceiling = ceiling
        self._color = color
        self.viewport = ViewportTransform(
            lock_x=chart_config.lock_x,
            lock_y=chart_config.lock_y,
            zoom_speed=chart_config.zoom_speed,
            scroll_speed=chart_config.scroll_speed,
            ctrl_to_zoom=chart_config.ctrl_to_zoom,
            shift_to_horizontal=chart_config.shift_to_horizontal,
        )
        self.controller = ViewTransformController(self.viewport)
        self.follow = True
        self._dragging = False

    def reset_view(self) -> None:
        self.follow = True
        self.refresh()

    def _fit_bounds(self) -> None:
        self.viewport.set_bounds(
            0.0,
            float(max(len(self._buffer), 1)),
            0.0,
            max(self._ceiling(), 1.0),
        )

    def render(self) -> Text:
        """Render the visible window of the buffer as block columns."""
        width, height = self.size.width, self.size.height
        if width <= 0 or height <= 0:
            return Text()
        vp = self.viewport
        vp.set_frame(0, 0, width, height)
        if self.follow:
            self._fit_bounds()

        values = self._buffer.values()
        total_levels = height * self.LEVELS_PER_ROW
        columns: list[list[str]] = []
        for col in range(width):
            x = vp.x_min + (col + 0.5) * (vp.x_max - vp.x_min) / width
            index = math.floor(x)
            if 0 <= index < len(values):
                normalized = (values[index] - vp.y_min) / (vp.y_max - vp.y_min)
                level = int(max(0.0, min(1.0, normalized)) * total_levels)
            else:
                level = 0
            columns.append(self._render_column(level, height))

        lines = ["".join(column[row] for column in columns) for row in reversed(range(height))]
        return Text("\n".join(lines), style=self._color)

    def _render_column(self, level: int, height: int) -> list[str]:
        """Characters for one column, bottom row first."""
        result: list[str] = []
        for row in range(height):
            remaining = level - row * self.LEVELS_PER_ROW
            if remaining <= 0:
                result.append(self.CHARS[0])
            elif remaining >= self.LEVELS_PER_ROW:
                result.append(self.CHARS[self.LEVELS_PER_ROW])
            else:
                result.append(self.CHARS[remaining])
        return result

    def apply_input(self, frame: FrameInput) -> None:
        """Feed one frame of input to the controller and redraw on change."""
        if self.follow:
            self._fit_bounds()
        before = self.viewport.bounds
        self.controller.apply(frame)
        if self.viewport.bounds != before:
            self.follow = False
            self.refresh()

    def _scroll(self, event: events.MouseEvent, delta: tuple[float, float]) -> None:
        offset = event.get_content_offset(self)
        self.apply_input(
            FrameInput(
                scroll=delta,
                pointer=(offset.x, offset.y) if offset is not None else None,
                hovered=offset is not None,
                ctrl=event.ctrl,
                shift=event.shift,
            )
        )
        event.stop()

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        self._scroll(event, (0.0, 1.0))

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        self._scroll(event, (0.0, -1.0))

    def on_mouse_down(self, event: events.MouseDown) -> None:
        if event.button == 1:
            self._dragging = True
            self.capture_mouse()

    def on_mouse_up(self, event: events.MouseUp) -> None:
        if self._dragging:
            self._dragging = False
            self.release_mouse()

    def on_mouse_move(self, event: events.MouseMove) -> None:
        if not self._dragging:
            return
        offset = event.get_content_offset(self)
        self.apply_input(
            FrameInput(
                pointer=(offset.x, offset.y) if offset is not None else None,
                pointer_delta=(float(event.delta_x), float(event.delta_y)),
                hovered=offset is not None,
                dragging=True,
                ctrl=event.ctrl,
                shift=event.shift,
            )
        )


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    COLUMNS: list[tuple[str, str, int | None]] = [
        ("", "selected", 2),
        ("PID", SortKey.PID.value, 8),
        ("Type", SortKey.KIND.value, 10),
        ("Process name", SortKey.NAME.value, None),
        ("GPU Memory Usage", SortKey.MEMORY.value, 18),
    ]

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self.model = ProcessTableModel()
        self._row_count = 0

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        for label, key, width in self.COLUMNS:
            table.add_column(label, key=key, width=width)
        self._update_subtitle()

    def update_processes(self, processes: tuple[ProcessRecord, ...] | list[ProcessRecord]) -> None:
        """Replace the rows with a new process list."""
        self.model.set_rows(processes)
        self._render_rows()

    def on_data_table_header_selected(self, event: DataTable.HeaderSelected) -> None:
        """Sort by the clicked column."""
        event.stop()
        try:
            key = SortKey(event.column_key.value)
        except ValueError:
            return
        self.model.click_header(key)
        self._update_subtitle()
        self._render_rows()

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Toggle selection of the clicked row."""
        event.stop()
        self.model.toggle_row(event.cursor_row)
        self._render_rows()
        self.app.query_one(ProcessDetail).update_selection(self.model)

    def _update_subtitle(self) -> None:
        state = self.model.sort_state
        if state.key is None:
            self.border_subtitle = "unsorted"
        else:
            arrow = "▼" if state.descending else "▲"
            self.border_subtitle = f"sort: {state.key.value} {arrow}"

    def _cells(self, index: int, proc: ProcessRecord) -> list[str]:
        return [
            "●" if index in self.model.selection else "",
            str(proc.pid),
            str(proc.kind),
            proc.name,
            format_memory(proc.used_gpu_memory),
        ]

    def _render_rows(self) -> None:
        """
        Write the model rows into the table.

        Rows are keyed by position and updated in place, so the cursor stays
        put while the contents change.
        """
        table = self.query_one("#process-table", DataTable)
        rows = self.model.rows

        for index, proc in enumerate(rows):
            cells = self._cells(index, proc)
            row_key = str(index)
            if index < self._row_count:
                for (_, column_key, _), value in zip(self.COLUMNS, cells):
                    table.update_cell(row_key, column_key, value)
            else:
                table.add_row(*cells, key=row_key)

        for index in range(len(rows), self._row_count):
            table.remove_row(str(index))
        self._row_count = len(rows)


class ProcessDetail(Static):
    """Details of the selected processes; hidden when nothing is selected."""

    DEFAULT_CSS = """
    ProcessDetail {
        height: auto;
        max-height: 8;
        padding: 0 1;
        border: round $secondary;
        display: none;
    }
    """

    def update_selection(self, model: ProcessTableModel) -> None:
        self.display = model.has_selection
        lines = [
            f"[bold]{proc.pid:>7}[/]  {str(proc.kind):<8}  {proc.name:<24}  "
            f"{format_memory(proc.used_gpu_memory)}"
            for proc in model.selected_rows()
        ]
        self.update("\n".join(lines))


class GputopApp(App):
    """Main gputop application."""

    TITLE = "gputop"
    SUB_TITLE = "GPU Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #device-stats {
        dock: top;
    }

    Horizontal {
        height: auto;
    }

    #device-info {
        width: 1fr;
    }

    #device-readings {
        width: 2fr;
    }

    #charts {
        height: 12;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "reset_view", "Reset charts"),
        ("escape", "clear_selection", "Clear selection"),
    ]

    def __init__(self, device: DeviceQuery, config: Config | None = None) -> None:
        """
        Initialize the GputopApp.

        Args:
            device: Device to sample; opened and closed by the monitor thread.
            config: Application configuration.
        """
        super().__init__()
        self._config = config or Config()
        self._slot = SnapshotSlot()
        self._monitor = TelemetryMonitor(
            SnapshotBuilder(device),
            self._slot,
            interval=self._config.sampling.interval,
        )
        self._history = MetricHistory(self._config.history.capacity)
        self._error_shown = False

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        chart_config = self._config.chart
        history = self._history
        yield DeviceStats(id="device-stats")
        with Horizontal(id="charts"):
            yield MetricChart(
                "Temperature (°C)",
                history.temperature,
                lambda: MetricHistory.TEMPERATURE_CEILING,
                color="rgb(168,68,13)",
                chart_config=chart_config,
                id="temperature-chart",
            )
            yield MetricChart(
                "Memory (MiB)",
                history.memory_used,
                lambda: history.memory_ceiling,
                color="rgb(95,118,156)",
                chart_config=chart_config,
                id="memory-chart",
            )
            yield MetricChart(
                "Power (W)",
                history.power_usage,
                lambda: MetricHistory.POWER_CEILING,
                color="rgb(207,184,54)",
                chart_config=chart_config,
                id="power-chart",
            )
        yield ProcessTable()
        yield ProcessDetail(id="process-detail")
        yield Footer()

    def on_mount(self) -> None:
        """Start sampling and poll for snapshots once per frame."""
        self._monitor.start()
        self.set_interval(self._config.ui.refresh_rate, self._check_for_updates)

    def on_unmount(self) -> None:
        self._monitor.stop()

    def _check_for_updates(self) -> None:
        """Take the latest snapshot, if any, and refresh the UI."""
        snapshot = self._slot.take()
        if snapshot is not None:
            self._update_ui(snapshot)
        elif self._monitor.error is not None and not self._error_shown:
            self._error_shown = True
            self.query_one("#device-stats", DeviceStats).show_error(str(self._monitor.error))

    def _update_ui(self, snapshot: DeviceSnapshot) -> None:
        """Update the UI with a new device snapshot."""
        self._history.record(snapshot)
        self.query_one("#device-stats", DeviceStats).update_snapshot(snapshot)
        for chart in self.query(MetricChart):
            chart.refresh()
        table = self.query_one(ProcessTable)
        table.update_processes(snapshot.processes)
        self.query_one(ProcessDetail).update_selection(table.model)

    def action_reset_view(self) -> None:
        """Return every chart to the full-history view."""
        for chart in self.query(MetricChart):
            chart.reset_view()

    def action_clear_selection(self) -> None:
        table = self.query_one(ProcessTable)
        table.model.clear_selection()
        table.update_processes(table.model.rows)
        self.query_one(ProcessDetail).update_selection(table.model)

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()
