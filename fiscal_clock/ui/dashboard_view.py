"""
Fiscal dashboard TUI using Textual.

Displays:
- Top: Status bar (aggregate status, request/cache counters)
- Middle: Grid of live metric tiles
- Bottom: Historical debt chart with the live value as the current year

Performance notes:
- Sink events are drained at ~20 FPS; only tiles that changed are refreshed
- The chart redraws once per second
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from rich.console import Group, RenderableType
from rich.text import Text

from textual.app import App, ComposeResult
from textual.containers import Grid
from textual.widgets import Footer, Static

from ..formatting import format_compact_usd
from ..history import chart_points, data_age
from ..types import SystemStatus
from .chart import render_area_chart
from .tiles import StatusView, TileView, apply_events, build_views

if TYPE_CHECKING:
    from ..engine.resolver import Resolver
    from ..engine.scheduler import RefreshScheduler
    from ..engine.sink import QueueSink
    from ..history import HistoricalSeries

# Color scheme (dark theme)
ACCENT_COLOR = "#10b981"
ERROR_COLOR = "#ef4444"
WARNING_COLOR = "#f59e0b"
FALLBACK_COLOR = "#8b5cf6"
TITLE_COLOR = "#94a3b8"
VALUE_COLOR = "#f8fafc"

STATUS_COLORS = {
    SystemStatus.INITIALIZING: WARNING_COLOR,
    SystemStatus.SYNCING: WARNING_COLOR,
    SystemStatus.LIVE: ACCENT_COLOR,
    SystemStatus.DEGRADED: FALLBACK_COLOR,
    SystemStatus.ERROR: ERROR_COLOR,
}

BADGE_STYLES = {
    "LIVE": "bold white on #047857",
    "DAILY": "bold white on #0369a1",
    "EST.": "bold black on #fbbf24",
    "DERIVED": "bold white on #6d28d9",
}


def tile_renderable(view: TileView) -> RenderableType:
    """Title + badge, value, then meta or error line."""
    header = Text(view.title, style=TITLE_COLOR)
    if view.badge:
        header.append("  ")
        header.append(f" {view.badge} ", style=BADGE_STYLES.get(view.badge, "reverse"))

    if view.error:
        value = Text(view.value, style="dim")
        footer = Text(f"⚠ {view.error}", style=ERROR_COLOR)
    else:
        value = Text(view.value, style=f"bold {VALUE_COLOR}")
        footer = Text(view.meta or " ", style="dim")
    if view.loading:
        footer = Text("loading…", style=f"italic {WARNING_COLOR}")

    return Group(header, Text(""), value, footer)


class Tile(Static):
    """One live metric."""

    DEFAULT_CSS = """
    Tile {
        height: 6;
        border: round #334155;
        padding: 0 1;
    }
    Tile.error {
        border: round #ef4444;
    }
    """

    def __init__(self, view: TileView) -> None:
        super().__init__(id=f"tile-{view.name}")
        self.tile_view = view

    def update_view(self) -> None:
        self.set_class(bool(self.tile_view.error), "error")
        self.refresh()

    def render(self) -> RenderableType:
        return tile_renderable(self.tile_view)


class StatusBar(Static):
    """Status bar showing aggregate status and fetch counters."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 1;
        padding: 0 2;
        background: #0f172a;
    }
    """

    def __init__(self, status: StatusView, counters: Callable[[], tuple[int, int]]) -> None:
        super().__init__()
        self.status_view = status
        self._counters = counters

    def render(self) -> RenderableType:
        color = STATUS_COLORS.get(self.status_view.status, WARNING_COLOR)
        requests, cache_hits = self._counters()
        result = Text()
        result.append(" U.S. FISCAL CLOCK ", style="bold white on #1e40af")
        result.append("  ● ", style=color)
        result.append(self.status_view.message, style=color)
        result.append("  │  ", style="dim")
        result.append("Requests: ", style="dim")
        result.append(str(requests), style="cyan")
        result.append("  Cache hits: ", style="dim")
        result.append(str(cache_hits), style="cyan")
        return result


class DebtChart(Static):
    """Yearly national debt, current year extended with the live value."""

    DEFAULT_CSS = """
    DebtChart {
        height: 12;
        border: round #334155;
        padding: 0 1;
    }
    """

    def __init__(self, history: HistoricalSeries | None, live_debt: Callable[[], float | None]) -> None:
        super().__init__()
        self.history = history
        self._live_debt = live_debt

    def render(self) -> RenderableType:
        points = chart_points(self.history, self._live_debt())
        if len(points) < 2:
            return Text("No debt history yet. Run `fiscal-clock crawl` to build it.", style="dim")

        years = [p[0] for p in points]
        values = [p[1] for p in points]
        width = max(10, self.size.width - 4)
        height = max(3, self.size.height - 3)

        title = Text("U.S. National Debt ", style=TITLE_COLOR)
        title.append(f"{years[0]}–{years[-1]}", style="dim")
        title.append(f"   {format_compact_usd(values[0])} → {format_compact_usd(values[-1])}", style=ACCENT_COLOR)
        if self.history is not None:
            age = data_age(self.history, datetime.now(timezone.utc))
            if age is not None and age.is_stale:
                title.append(f"   history {age.hours:.0f}h old", style=WARNING_COLOR)

        rows = [Text(row, style=ACCENT_COLOR) for row in render_area_chart(values, width, height)]
        axis = Text(str(years[0]), style="dim")
        axis.append(" " * max(1, width - len(str(years[0])) - len(str(years[-1]))))
        axis.append(str(years[-1]), style="dim")
        return Group(title, *rows, axis)


class DashboardApp(App):
    """Main Fiscal Clock application."""

    CSS = """
    Screen {
        background: #0f172a;
    }

    #tiles {
        grid-size: 3;
        grid-gutter: 0 1;
        height: auto;
        padding: 1 2 0 2;
    }

    DebtChart {
        margin: 0 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "force_refresh", "Force Refresh"),
    ]

    def __init__(
        self,
        sink: QueueSink,
        scheduler: RefreshScheduler,
        history: HistoricalSeries | None = None,
        drain_fps: float = 20.0,
    ) -> None:
        super().__init__()
        self.sink = sink
        self.scheduler = scheduler
        self.resolver: Resolver = scheduler.resolver
        self.history = history
        self.drain_interval = 1.0 / drain_fps

        registry = self.resolver.registry
        self.tile_views = build_views(registry.definition(name) for name in registry.names)
        self.status_view = StatusView()
        self._tiles: dict[str, Tile] = {}
        self._status_bar: StatusBar | None = None
        self._chart: DebtChart | None = None

    def _counters(self) -> tuple[int, int]:
        client = self.scheduler.client
        if client is None:
            return 0, 0
        return client.request_count, client.cache_hits

    def compose(self) -> ComposeResult:
        self._status_bar = StatusBar(self.status_view, self._counters)
        self._tiles = {name: Tile(view) for name, view in self.tile_views.items()}
        self._chart = DebtChart(self.history, lambda: self.resolver.get_live_value("debt"))

        yield self._status_bar
        yield Grid(*self._tiles.values(), id="tiles")
        yield self._chart
        yield Footer()

    def on_mount(self) -> None:
        """Start the sink consumer and the chart timer."""
        self.set_interval(self.drain_interval, self._consume_events)
        self.set_interval(1.0, self._refresh_chart)

    def _consume_events(self) -> None:
        """Drain sink events and refresh the widgets they touched."""
        changed = apply_events(self.tile_views, self.status_view, self.sink.drain())
        for name in changed:
            if name == "":
                if self._status_bar:
                    self._status_bar.refresh()
            elif name in self._tiles:
                self._tiles[name].update_view()

    def _refresh_chart(self) -> None:
        if self._chart:
            self._chart.refresh()
        if self._status_bar:
            self._status_bar.refresh()

    def action_force_refresh(self) -> None:
        """Clear caches and re-resolve everything (bound to 'r' key)."""
        self.run_worker(self.scheduler.force_refresh(), group="refresh")


async def run_ui(
    sink: QueueSink,
    scheduler: RefreshScheduler,
    history: HistoricalSeries | None = None,
) -> None:
    """Run the TUI application."""
    app = DashboardApp(sink, scheduler, history)
    await app.run_async()
