"""Pure rendering of a session view into a rich layout.

Nothing here performs I/O or touches session state; every function maps the
view it is given to renderables so a redraw is always cheap.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

from rich.align import Align
from rich.console import Console, ConsoleOptions, Group, RenderResult
from rich.layout import Layout
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from config import MonitorConfig
from monitor.alarm import AlarmStatus
from monitor.session import SessionView

SPARK = " ▁▂▃▄▅▆▇█"
LOG_LINES = 6


# ── Formatting helpers ─────────────────────────────────────────────────────

def fmt_dollar(val: float) -> str:
    if val >= 1_000_000_000:
        return f"${val / 1_000_000_000:.2f}B"
    if val >= 1_000_000:
        return f"${val / 1_000_000:.2f}M"
    if val >= 1_000:
        return f"${val / 1_000:.1f}K"
    return f"${val:.2f}"


def fmt_price(val: Union[Decimal, float]) -> str:
    if val >= 1:
        return f"${val:.4f}"
    if val >= Decimal("0.01"):
        return f"${val:.6f}"
    return f"${val:.10f}"


def fmt_change(val: float) -> Text:
    style = "green" if val >= 0 else "red"
    return Text(f"{val:+.2f}%", style=style)


def fmt_elapsed(seconds: float) -> str:
    seconds = max(int(seconds), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def gauge_color(progress: float) -> str:
    if progress >= 1.0:
        return "yellow"
    if progress >= 0.75:
        return "green"
    if progress >= 0.5:
        return "cyan"
    return "blue"


# ── Sparkline ──────────────────────────────────────────────────────────────

class Sparkline:
    """Block-character chart that fills whatever space the layout gives it."""

    def __init__(self, values: Sequence[float], style: str = "green") -> None:
        self.values = list(values)
        self.style = style

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        width = max(options.max_width, 1)
        height = max(options.height or 1, 1)
        values = self.values[-width:]
        if not values:
            yield Text("No samples yet", style="dim")
            return

        lo, hi = min(values), max(values)
        steps = len(SPARK) - 1
        levels = []
        for v in values:
            if hi == lo:
                levels.append(height * steps // 2 or 1)
            else:
                levels.append(max(1, round((v - lo) / (hi - lo) * height * steps)))

        for row in range(height):
            floor = (height - 1 - row) * steps
            line = "".join(SPARK[max(0, min(level - floor, steps))] for level in levels)
            yield Text(line, style=self.style)


# ── Panels ─────────────────────────────────────────────────────────────────

def build_header(view: SessionView, config: MonitorConfig, now: float) -> Panel:
    snapshot = view.snapshot
    if snapshot is not None:
        title = Text(f" MOONCAP: {snapshot.token_name} (${snapshot.token_symbol}) ", style="bold cyan")
    else:
        title = Text(" MOONCAP ", style="bold cyan")

    line = Text()
    line.append(f" {config.chain.upper()} ", style="bold black on magenta")
    line.append("  ")
    if view.alarm.status is AlarmStatus.TRIGGERED:
        line.append(" TARGET HIT! press s to silence ", style="bold yellow blink")
    elif view.alarm.status is AlarmStatus.SILENCED:
        line.append(" Target hit, alarm silenced ", style="yellow")
    else:
        line.append(f" {view.progress * 100:.1f}% to target ", style="cyan")
    line.append(f"  Up {fmt_elapsed(now - view.started_at)}", style="dim")
    if view.fetch_in_flight:
        line.append("  Fetching…", style="dim italic")

    return Panel(line, title=title, title_align="left", border_style="magenta")


def build_chart(view: SessionView) -> Panel:
    snapshot = view.snapshot
    rising = snapshot is None or snapshot.price_change_h1 >= 0
    chart = Sparkline([s.market_cap for s in view.history], style="green" if rising else "red")

    subtitle = None
    if view.history_low is not None and view.history_high is not None:
        subtitle = f"low {fmt_dollar(view.history_low)} · high {fmt_dollar(view.history_high)}"
        if view.history_change_pct is not None:
            subtitle += f" · {view.history_change_pct:+.2f}%"

    return Panel(
        chart,
        title="[green] Market Cap History [/green]",
        subtitle=subtitle,
        border_style="bright_black",
    )


def build_gauge(view: SessionView, config: MonitorConfig) -> Panel:
    market_cap = view.snapshot.market_cap if view.snapshot else 0.0
    color = gauge_color(view.progress)
    bar = ProgressBar(total=1.0, completed=view.progress, complete_style=color, finished_style=color)
    label = Text(f"{fmt_dollar(market_cap)} / {fmt_dollar(config.target_market_cap)}  ({view.progress * 100:.1f}%)")
    row = Table.grid(expand=True, padding=(0, 1))
    row.add_column(ratio=1)
    row.add_column(no_wrap=True, justify="right")
    row.add_row(bar, label)
    return Panel(row, title="[yellow] Target Progress [/yellow]", border_style="bright_black")


def build_stats(view: SessionView, config: MonitorConfig) -> Panel:
    snapshot = view.snapshot
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bright_black", no_wrap=True)
    table.add_column(no_wrap=True)

    if snapshot is not None:
        price_style = "bold green" if snapshot.price_change_h1 >= 0 else "bold red"
        table.add_row("Price", Text(fmt_price(snapshot.price_usd), style=price_style))
        table.add_row("", "")
        table.add_row("Market Cap", Text(fmt_dollar(snapshot.market_cap), style="bold white"))
        table.add_row("FDV", fmt_dollar(snapshot.fdv))
        table.add_row("", "")
        table.add_row("1h Change", fmt_change(snapshot.price_change_h1))
        table.add_row("6h Change", fmt_change(snapshot.price_change_h6))
        table.add_row("24h Change", fmt_change(snapshot.price_change_h24))
        table.add_row("", "")
        table.add_row("Volume 1h", Text(fmt_dollar(snapshot.volume_h1), style="cyan"))
        table.add_row("Volume 6h", Text(fmt_dollar(snapshot.volume_h6), style="cyan"))
        table.add_row("Volume 24h", Text(fmt_dollar(snapshot.volume_h24), style="cyan"))
        table.add_row("Liquidity", Text(fmt_dollar(snapshot.liquidity_usd), style="cyan"))
        table.add_row("", "")
        table.add_row("Buys 24h", Text(str(snapshot.buys_h24), style="green"))
        table.add_row("Sells 24h", Text(str(snapshot.sells_h24), style="red"))
        table.add_row("", "")

    table.add_row("Target", Text(fmt_dollar(config.target_market_cap) + " 🎯", style="bold yellow"))
    fetches = Text(str(view.fetch_count), style="white")
    if view.error_count:
        fetches.append(f"  ({view.error_count} errors)", style="red")
    table.add_row("Fetches", fetches)

    body: list = [table]
    if view.last_error is not None:
        body.append(error_line(view))
    return Panel(Group(*body), title="[bold cyan] Stats [/bold cyan]", border_style="bright_black")


def error_line(view: SessionView) -> Text:
    error = view.last_error
    text = Text(f"⚠ Last fetch failed ({error.kind}): {error}", style="bold red")
    if view.snapshot is not None:
        fetched = view.snapshot.fetched_at.astimezone().strftime("%H:%M:%S")
        text.append(f"\nShowing data from {fetched}", style="red")
    return text


def build_waiting(view: SessionView) -> Panel:
    body: list = [Text("Waiting for data…", style="bold cyan", justify="center")]
    if view.last_error is not None:
        body.append(Text(""))
        body.append(error_line(view))
    return Panel(Align.center(Group(*body), vertical="middle"), border_style="bright_black")


def _log_style(message: str) -> str:
    if "TARGET HIT" in message:
        return "bold yellow"
    if "Error" in message:
        return "red"
    return "bright_black"


def build_log(lines: Iterable[str], limit: int = LOG_LINES) -> Panel:
    recent = list(lines)[-limit:]
    log = Text()
    for message in reversed(recent):
        log.append(message + "\n", style=_log_style(message))

    help_line = Text()
    for key, label in (("q", "quit"), ("r", "refresh"), ("s", "stop alarm")):
        help_line.append(f" {key}", style="bold yellow")
        help_line.append(f" {label} ", style="bright_black")

    return Panel(Group(log, help_line), title="[white] Log [/white]", border_style="bright_black")


# ── Layout ─────────────────────────────────────────────────────────────────

def render_dashboard(view: SessionView, config: MonitorConfig, now: float, log_lines: Optional[int] = None) -> Layout:
    """Maps one session view to a full-screen frame."""
    limit = log_lines or LOG_LINES
    layout = Layout()
    layout.split_column(
        Layout(build_header(view, config, now), name="header", size=3),
        Layout(name="body", minimum_size=10),
        Layout(build_log(view.log, limit), name="log", size=limit + 3),
    )

    if view.snapshot is None:
        layout["body"].update(build_waiting(view))
        return layout

    chart = Layout(name="chart", ratio=55)
    chart.split_column(
        Layout(build_chart(view), name="sparkline"),
        Layout(build_gauge(view, config), name="gauge", size=3),
    )
    layout["body"].split_row(chart, Layout(build_stats(view, config), name="stats", ratio=45))
    return layout
