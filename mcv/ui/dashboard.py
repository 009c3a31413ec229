import logging
import threading
from typing import Optional

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text
from rich.box import SIMPLE

from mcv.domain.models import TaskState
from mcv.ui.state import TaskView, UIState

logger = logging.getLogger(__name__)

STATE_STYLES = {
    TaskState.SPAWNING: ("…", "dim"),
    TaskState.RUNNING: ("▶", "cyan"),
    TaskState.COMPLETED: ("✓", "green"),
    TaskState.CANCELLED: ("■", "yellow"),
    TaskState.TIMED_OUT: ("⏱", "red"),
    TaskState.FAILED: ("✗", "red"),
}


def format_time(seconds: Optional[float]) -> str:
    """Format time: 59s, 01m 01s, 1h 01m."""
    if seconds is None:
        return "--:--"
    if seconds < 60:
        return f"{int(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60):02d}m {int(seconds % 60):02d}s"
    return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60):02d}m"


def _truncate(text: str, max_len: int = 36) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + "…"


class Dashboard:
    """Live progress table fed from UIState."""

    def __init__(self, state: UIState, refresh_per_second: int = 4, show_eta: bool = True,
                 console: Optional[Console] = None):
        self.state = state
        self.refresh_per_second = refresh_per_second
        self.show_eta = show_eta
        self.console = console or Console()
        self._live: Optional[Live] = None
        self._refresh_thread: Optional[threading.Thread] = None
        self._stop_refresh = threading.Event()

    def _render_row(self, table: Table, view: TaskView):
        icon, style = STATE_STYLES[view.state]
        bar = ProgressBar(total=100, completed=view.percent, width=24)
        detail = ""
        if view.state == TaskState.RUNNING:
            parts = []
            if view.speed is not None:
                parts.append(f"{view.speed:.2f}x")
            if view.fps is not None:
                parts.append(f"{view.fps:.0f} fps")
            if self.show_eta:
                parts.append(f"ETA {format_time(view.eta_seconds)}")
            detail = " • ".join(parts)
        elif view.error:
            detail = _truncate(view.error, 48)
        table.add_row(
            Text(icon, style=style),
            _truncate(view.label),
            view.target,
            bar,
            f"{view.percent:5.1f}%",
            Text(detail, style="red" if view.error else "dim"),
        )

    def create_display(self) -> RenderableType:
        table = Table(box=SIMPLE, expand=True, show_edge=False)
        table.add_column("", width=2)
        table.add_column("FILE", no_wrap=True)
        table.add_column("TO", width=5)
        table.add_column("PROGRESS", width=24)
        table.add_column("%", justify="right", width=6)
        table.add_column("DETAIL", no_wrap=True)
        for view in self.state.snapshot():
            self._render_row(table, view)

        counts = self.state.counts()
        footer = Text(
            f"GPU: {self.state.hardware_label} • Running: {counts['running']} • "
            f"Done: {counts['completed']} • Failed: {counts['failed']} • Cancelled: {counts['cancelled']}",
            style="dim",
        )
        if self.state.interrupt_requested:
            footer.append(" • Interrupted, cancelling running tasks", style="bold yellow")
        return Panel(Group(table, footer), title="MCV", border_style="cyan")

    def _refresh_loop(self):
        interval = 1.0 / self.refresh_per_second
        while not self._stop_refresh.wait(interval):
            if self._live:
                try:
                    self._live.update(self.create_display())
                except Exception:
                    logger.debug("Dashboard refresh failed", exc_info=True)

    def start(self):
        self._live = Live(self.create_display(), console=self.console,
                          refresh_per_second=self.refresh_per_second)
        self._live.start()
        self._stop_refresh.clear()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, daemon=True)
        self._refresh_thread.start()
        return self

    def stop(self):
        self._stop_refresh.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=1.0)
            self._refresh_thread = None
        if self._live:
            self._live.update(self.create_display())
            self._live.stop()
            self._live = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
