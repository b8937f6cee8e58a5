"""
Console status view for headless runs.

Renders the pipeline snapshot with Rich:
- top bar with run state and model version
- open / last closed bar
- recent signals and rolling metrics
"""

from typing import Optional

from rich.console import Console
from rich.layout import Layout

from core.pipeline import Pipeline
from core.scheduler import PeriodicTask
from dashboard.panels import (
    render_bar_panel,
    render_metrics_panel,
    render_signal_panel,
    render_top_bar,
)


class Dashboard:
    """Terminal status view over one pipeline."""

    def __init__(self, pipeline: Pipeline, console: Optional[Console] = None, signal_rows: int = 8):
        self.pipeline = pipeline
        self.console = console or Console()
        self.signal_rows = signal_rows
        self._refresher: Optional[PeriodicTask] = None

    def render(self) -> Layout:
        engine = self.pipeline.engine
        aggregator = self.pipeline.aggregator

        layout = Layout()
        layout.split_column(
            Layout(name="header", size=1),
            Layout(name="main"),
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1),
        )
        layout["left"].split_column(
            Layout(name="bars", size=6),
            Layout(name="signals"),
        )

        layout["header"].update(render_top_bar(self.pipeline))
        layout["bars"].update(render_bar_panel(aggregator.current(), aggregator.latest_bar()))
        layout["signals"].update(render_signal_panel(engine.recent_signals(self.signal_rows)))
        layout["right"].update(render_metrics_panel(engine.latest_metrics(), engine.decayed_success_rate()))
        return layout

    def print(self) -> None:
        self.console.print(self.render(), height=18)

    def start(self, interval: float = 10.0) -> None:
        """Print a fresh snapshot every ``interval`` seconds."""
        if self._refresher is None:
            self._refresher = PeriodicTask("dashboard", interval, self.print)
        self._refresher.start()

    async def stop(self) -> None:
        if self._refresher is not None:
            await self._refresher.stop()
