from __future__ import annotations

import threading
from typing import Any, Dict, Optional, Sequence

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table


def _format_failures(failed: Sequence[str], *, max_items: int = 3) -> str:
    if not failed:
        return ""
    shown = list(failed[:max_items])
    tail = len(failed) - len(shown)
    rendered = "failed: " + ", ".join(shown)
    if tail > 0:
        rendered = f"{rendered} (+{tail} more)"
    return rendered


class RunProgress:
    """
    Subscription-level progress bar. advance() is called from worker threads
    through the pool's completion callback.
    """

    def __init__(self, *, enabled: bool, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._console = console or Console(stderr=True)
        self._lock = threading.Lock()
        self._progress: Optional[Progress] = None
        self._task: Optional[int] = None
        self._rows = 0
        self._failed: list[str] = []
        self._started = False
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("rows={task.fields[rows]}"),
                TextColumn("{task.fields[failed]}", justify="left"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> RunProgress:
        if self._enabled and self._progress and not self._started:
            self._progress.start()
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._enabled and self._progress and self._started:
            self._progress.stop()
            self._started = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def rows(self) -> int:
        return self._rows

    def start_collection(self, subscriptions: Sequence[str]) -> None:
        if not self._enabled or not self._progress:
            return
        self._task = self._progress.add_task(
            "Subscriptions",
            total=len(subscriptions),
            rows=0,
            failed="",
        )

    def advance(self, subscription: str, *, rows: int = 0, ok: bool = True) -> None:
        with self._lock:
            self._rows += rows
            if not ok:
                self._failed.append(subscription)
            if not self._enabled or not self._progress or self._task is None:
                return
            self._progress.update(
                self._task,
                advance=1,
                rows=self._rows,
                failed=_format_failures(self._failed),
            )


def render_run_summary_table(
    *,
    enabled: bool,
    status: str,
    summary: Dict[str, Any],
    outdir: str,
    console: Optional[Console] = None,
) -> None:
    if not enabled:
        return
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Status", status)
    table.add_row("Subscriptions", str(summary.get("subscriptions_total", 0)))
    table.add_row("Subscriptions failed", str(len(summary.get("failed_subscriptions") or [])))
    table.add_row("Rows", str(summary.get("rows_total", 0)))
    for row_type, count in sorted((summary.get("rows_by_type") or {}).items()):
        table.add_row(f"  {row_type}", str(count))
    table.add_row("Orphaned public IPs", str(summary.get("orphaned_public_ips", 0)))
    table.add_row("Output dir", outdir)
    (console or Console()).print(table)
