"""
Dashboard Panels - Individual UI components.

Each function renders one panel from a Pipeline snapshot.
"""

from datetime import datetime, timezone
from typing import Optional

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.models import Bar, Direction, MetricSnapshot, Signal
from core.pipeline import Pipeline


def render_top_bar(pipeline: Pipeline) -> Text:
    """Render the status bar at top of dashboard."""
    bar = Text()

    bar.append("STATE: ", style="dim")
    if pipeline.running:
        bar.append("RUNNING", style="green bold")
    else:
        bar.append("STOPPED", style="yellow")
    bar.append(" │ ")

    bar.append("MODEL: ", style="dim")
    bar.append(pipeline.predictor.version, style="cyan")
    bar.append(" │ ")

    bar.append("PENDING: ", style="dim")
    bar.append(str(pipeline.engine.pending_count()))
    bar.append(" │ ")

    bar.append(datetime.now(timezone.utc).strftime("%H:%M:%S"), style="dim")
    return bar


def render_bar_panel(current: Optional[Bar], last_closed: Optional[Bar]) -> Panel:
    """Open bar plus the last closed bar."""
    table = Table(box=None, padding=(0, 1), expand=True)
    table.add_column("", style="dim", width=7)
    for name in ("Open", "High", "Low", "Close"):
        table.add_column(name, justify="right")
    table.add_column("Ticks", justify="right", width=6)

    for label, bar in (("open", current), ("closed", last_closed)):
        if bar is None:
            table.add_row(label, "-", "-", "-", "-", "-")
            continue
        color = "green" if bar.is_green else "red"
        table.add_row(
            label,
            f"{bar.open:.5f}", f"{bar.high:.5f}", f"{bar.low:.5f}",
            f"[{color}]{bar.close:.5f}[/]", str(bar.count),
        )
    return Panel(table, title="[bold]Bars[/]", border_style="blue")


def render_signal_panel(signals: list[Signal]) -> Panel:
    """Recent signals, newest first."""
    table = Table(box=None, padding=(0, 1), expand=True)
    table.add_column("Time", style="dim", width=8)
    table.add_column("Dir", width=4)
    table.add_column("Conf", justify="right", width=6)
    table.add_column("Price", justify="right")
    table.add_column("Result", width=7)

    for sig in signals:
        arrow = "[green]▲[/]" if sig.direction is Direction.UP else "[red]▼[/]"
        if sig.is_pending:
            result = "[yellow]pending[/]"
        elif sig.is_correct:
            result = "[green]✓[/]"
        else:
            result = "[red]✗[/]"
        table.add_row(
            sig.created_at.strftime("%H:%M:%S"),
            arrow,
            f"{sig.probability:.0%}",
            f"{sig.price_at_prediction:.5f}",
            result,
        )
    if not signals:
        table.add_row("[dim]No signals yet[/]", "", "", "", "")
    return Panel(table, title="[bold]Signals[/]", border_style="yellow")


def render_metrics_panel(metrics: Optional[MetricSnapshot], dynamic_rate: float) -> Panel:
    """Rolling accuracy/precision/recall."""
    if metrics is None:
        return Panel("[dim]Waiting for verified signals[/]", title="[bold]Metrics[/]", border_style="green")

    lines = [
        f"Accuracy   {metrics.accuracy:6.1%}",
        f"Precision  {metrics.precision:6.1%}",
        f"Recall     {metrics.recall:6.1%}",
        f"Decayed    {dynamic_rate:6.1%}",
        f"[dim]{metrics.correct_signals}/{metrics.total_signals} correct (window {metrics.window_size})[/]",
    ]
    return Panel("\n".join(lines), title=f"[bold]Metrics[/] [dim]{metrics.model_version}[/]", border_style="green")
