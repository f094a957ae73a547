"""
Fiscal dashboard GUI using PyQt6 - pops out as a standalone window.

Layout:
- Header with aggregate status
- Grid of metric tiles (title, badge, value, meta/error)
- Painted line chart of yearly debt, extended with the live value

The event loop runs in a background thread; the window polls the QueueSink
on a QTimer and never touches engine state except to read snapshots.
"""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Callable

from PyQt6.QtCore import QPointF, Qt, QTimer
from PyQt6.QtGui import QColor, QFont, QPainter, QPainterPath, QPen
from PyQt6.QtWidgets import (
    QApplication, QFrame, QGridLayout, QHBoxLayout, QLabel, QMainWindow,
    QPushButton, QVBoxLayout, QWidget,
)

from ..formatting import format_compact_usd
from ..history import chart_points
from ..types import SystemStatus
from .tiles import StatusView, TileView, apply_events, build_views

if TYPE_CHECKING:
    from ..engine.scheduler import RefreshScheduler
    from ..engine.sink import QueueSink
    from ..history import HistoricalSeries

# Colors
ACCENT_COLOR = QColor(16, 185, 129)    # Green
ERROR_COLOR = QColor(239, 68, 68)      # Red
WARNING_COLOR = QColor(245, 158, 11)   # Amber
FALLBACK_COLOR = QColor(139, 92, 246)  # Purple
BG_COLOR = QColor(15, 23, 42)          # Dark blue-gray
TILE_BG = QColor(30, 41, 59)
TEXT_COLOR = QColor(248, 250, 252)
SUBTLE_COLOR = QColor(148, 163, 184)

STATUS_COLORS = {
    SystemStatus.INITIALIZING: WARNING_COLOR,
    SystemStatus.SYNCING: WARNING_COLOR,
    SystemStatus.LIVE: ACCENT_COLOR,
    SystemStatus.DEGRADED: FALLBACK_COLOR,
    SystemStatus.ERROR: ERROR_COLOR,
}

TILE_COLUMNS = 3
POLL_INTERVAL_MS = 16  # ~60 FPS
CHART_EVERY_N_POLLS = 60


class TileWidget(QFrame):
    """One metric tile. Reads from a TileView."""

    def __init__(self, view: TileView) -> None:
        super().__init__()
        self.tile_view = view
        self.setStyleSheet(
            f"QFrame {{ background-color: {TILE_BG.name()}; border-radius: 8px; }}"
        )
        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 10, 12, 10)

        header = QHBoxLayout()
        self.title = QLabel(view.title)
        self.title.setStyleSheet(f"color: {SUBTLE_COLOR.name()};")
        self.badge = QLabel(view.badge)
        self.badge.setStyleSheet(
            f"color: {TEXT_COLOR.name()}; background-color: #334155; padding: 1px 6px; border-radius: 4px;"
        )
        header.addWidget(self.title, 1)
        header.addWidget(self.badge, 0, Qt.AlignmentFlag.AlignRight)
        layout.addLayout(header)

        self.value = QLabel(view.value)
        self.value.setFont(QFont("Consolas", 18, QFont.Weight.Bold))
        layout.addWidget(self.value)

        self.meta = QLabel("")
        self.meta.setWordWrap(True)
        layout.addWidget(self.meta)

        self.update_view()

    def update_view(self) -> None:
        view = self.tile_view
        self.value.setText(view.value)
        if view.error:
            self.value.setStyleSheet(f"color: {SUBTLE_COLOR.name()};")
            self.meta.setText(f"⚠ {view.error}")
            self.meta.setStyleSheet(f"color: {ERROR_COLOR.name()};")
        elif view.loading:
            self.value.setStyleSheet(f"color: {TEXT_COLOR.name()};")
            self.meta.setText("loading…")
            self.meta.setStyleSheet(f"color: {WARNING_COLOR.name()}; font-style: italic;")
        else:
            self.value.setStyleSheet(f"color: {TEXT_COLOR.name()};")
            self.meta.setText(view.meta)
            self.meta.setStyleSheet(f"color: {SUBTLE_COLOR.name()};")


class DebtChartWidget(QWidget):
    """Line chart of yearly national debt."""

    def __init__(self, history: HistoricalSeries | None, live_debt: Callable[[], float | None]) -> None:
        super().__init__()
        self.history = history
        self._live_debt = live_debt
        self.setMinimumHeight(220)

    def paintEvent(self, event) -> None:  # noqa: N802 - Qt override
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.fillRect(self.rect(), TILE_BG)

        points = chart_points(self.history, self._live_debt())
        if len(points) < 2:
            painter.setPen(SUBTLE_COLOR)
            painter.drawText(
                self.rect(), Qt.AlignmentFlag.AlignCenter,
                "No debt history yet. Run `fiscal-clock crawl` to build it.",
            )
            painter.end()
            return

        margin_left, margin_right, margin_top, margin_bottom = 70, 20, 30, 30
        width = self.width() - margin_left - margin_right
        height = self.height() - margin_top - margin_bottom
        years = [p[0] for p in points]
        values = [p[1] for p in points]
        low, high = min(values), max(values)
        span = (high - low) or 1.0

        def to_xy(i: int, value: float) -> QPointF:
            x = margin_left + width * i / (len(points) - 1)
            y = margin_top + height * (1.0 - (value - low) / span)
            return QPointF(x, y)

        # Axis labels
        painter.setPen(SUBTLE_COLOR)
        painter.drawText(10, margin_top + 5, format_compact_usd(high))
        painter.drawText(10, margin_top + height, format_compact_usd(low))
        painter.drawText(margin_left, self.height() - 8, str(years[0]))
        painter.drawText(self.width() - margin_right - 30, self.height() - 8, str(years[-1]))
        painter.setPen(TEXT_COLOR)
        painter.drawText(margin_left, 18, "U.S. National Debt")

        path = QPainterPath(to_xy(0, values[0]))
        for i, value in enumerate(values[1:], start=1):
            path.lineTo(to_xy(i, value))
        painter.setPen(QPen(ACCENT_COLOR, 2))
        painter.drawPath(path)
        painter.end()


class DashboardWindow(QMainWindow):
    """Main Fiscal Clock window."""

    def __init__(
        self,
        sink: QueueSink,
        scheduler: RefreshScheduler,
        loop: asyncio.AbstractEventLoop,
        history: HistoricalSeries | None = None,
    ) -> None:
        super().__init__()
        self.sink = sink
        self.scheduler = scheduler
        self.loop = loop
        self.history = history

        registry = scheduler.resolver.registry
        self.tile_views = build_views(registry.definition(name) for name in registry.names)
        self.status_view = StatusView()
        self._tiles: dict[str, TileWidget] = {}
        self._polls = 0

        self.setWindowTitle("U.S. Fiscal Clock")
        self.setMinimumSize(1000, 760)
        self.setStyleSheet(f"background-color: {BG_COLOR.name()}; color: {TEXT_COLOR.name()};")

        self._setup_ui()
        self._setup_timer()

    def _setup_ui(self) -> None:
        """Build the UI."""
        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)
        layout.setContentsMargins(10, 10, 10, 10)

        # Header
        header = QHBoxLayout()
        self.header = QLabel(self.status_view.message)
        self.header.setFont(QFont("Consolas", 12, QFont.Weight.Bold))
        header.addWidget(self.header, 1)
        self.refresh_button = QPushButton("Refresh")
        self.refresh_button.clicked.connect(self._force_refresh)
        header.addWidget(self.refresh_button, 0)
        layout.addLayout(header)

        # Tiles
        grid = QGridLayout()
        grid.setSpacing(10)
        for i, (name, view) in enumerate(self.tile_views.items()):
            tile = TileWidget(view)
            self._tiles[name] = tile
            grid.addWidget(tile, i // TILE_COLUMNS, i % TILE_COLUMNS)
        layout.addLayout(grid)

        # Chart
        self.chart = DebtChartWidget(self.history, lambda: self.scheduler.resolver.get_live_value("debt"))
        layout.addWidget(self.chart, 1)

        self._update_header()

    def _setup_timer(self) -> None:
        """Setup timer to poll the sink queue."""
        self.timer = QTimer()
        self.timer.timeout.connect(self._poll_events)
        self.timer.start(POLL_INTERVAL_MS)

    def _poll_events(self) -> None:
        """Drain sink events from the thread-safe queue and update touched widgets."""
        changed = apply_events(self.tile_views, self.status_view, self.sink.drain())
        for name in changed:
            if name == "":
                self._update_header()
            elif name in self._tiles:
                self._tiles[name].update_view()

        self._polls += 1
        if self._polls % CHART_EVERY_N_POLLS == 0:
            self.chart.update()

    def _update_header(self) -> None:
        color = STATUS_COLORS.get(self.status_view.status, WARNING_COLOR)
        self.header.setText(f"  ●  {self.status_view.message}")
        self.header.setStyleSheet(f"color: {color.name()}; padding: 6px;")

    def _force_refresh(self) -> None:
        """Schedule a force refresh on the feed loop."""
        if self.loop.is_closed():
            return
        self.scheduler.submit_force_refresh(self.loop)


def run_gui(
    sink: QueueSink,
    scheduler: RefreshScheduler,
    loop: asyncio.AbstractEventLoop,
    history: HistoricalSeries | None = None,
) -> None:
    """Run the GUI application (blocking)."""
    app = QApplication(sys.argv)
    app.setStyle("Fusion")  # Modern look

    window = DashboardWindow(sink, scheduler, loop, history)
    window.show()

    app.exec()
