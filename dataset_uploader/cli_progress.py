"""Console rendering and progress helpers for the dataset-up CLI."""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional
import time

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table


console = Console()


def _echo(message: str) -> None:
    console.print(message)


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.1f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]dataset-up[/bold green]",
        subtitle="[dim]dataset uploader CLI[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_staged_files(files: Iterable[Any]) -> None:
    """Render the staged file list with sizes."""
    files = list(files)
    table = Table(title=f"Staged Files ({len(files)})", title_justify="left")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="white")
    table.add_column("Size", justify="right", style="cyan")
    for idx, staged in enumerate(files, 1):
        table.add_row(str(idx), staged.name, f"{staged.size_bytes / 1024:.1f} KB")
    console.print(table)


def render_notification(notification: Any) -> None:
    if notification is None:
        return
    if getattr(notification, "is_error", False):
        _echo(f"[bold red]✗[/bold red] {notification.message}")
    else:
        _echo(f"[bold green]✓[/bold green] {notification.message}")


def render_uploaded_urls(urls: Iterable[str]) -> None:
    """Render the uploaded-file registry."""
    urls = list(urls)
    if not urls:
        _echo("[dim]No datasets available.[/dim]")
        return
    table = Table(title="Uploaded Datasets", title_justify="left")
    table.add_column("File", style="bold")
    table.add_column("URL", style="blue", overflow="fold")
    for idx, url in enumerate(urls, 1):
        table.add_row(f"File {idx}", url)
    console.print(table)


def render_storage_error(message: Optional[str]) -> None:
    if message:
        console.print(Panel(message, border_style="red", title="[bold red]Storage[/bold red]"))


class BatchUploadProgressDisplay:
    """Event-based console display for a batch upload."""

    def __init__(self):
        self._active_tasks: Dict[int, TaskID] = {}
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold green]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
        )
        self._started = False

    def _emit_timeline(self, status: str, name: str, error: Optional[str] = None) -> None:
        stamp = time.strftime("%H:%M:%S")
        error_label = f" cause={error}" if error else ""
        color = {"DONE": "green", "FAIL": "red"}.get(status, "white")
        self._progress.console.print(
            f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] file: {name}{error_label}"
        )

    def start(self) -> None:
        if not self._started:
            self._progress.start()
            self._started = True

    def stop(self) -> None:
        if self._started:
            self._progress.stop()
            self._started = False

    @property
    def active_task_count(self) -> int:
        return len(self._active_tasks)

    # Tasks are keyed by object identity; staged files may share a name.
    def on_file_start(self, staged: Any) -> None:
        self.start()
        task_id = self._progress.add_task("upload", label=staged.name[:60], total=100)
        self._active_tasks[id(staged)] = task_id

    def on_file_progress(self, staged: Any, file_progress: Any) -> None:
        task_id = self._active_tasks.get(id(staged))
        if task_id is None:
            return
        self._progress.update(task_id, completed=float(getattr(file_progress, "percent", 0.0)))

    def _finish_task(self, staged: Any) -> None:
        task_id = self._active_tasks.pop(id(staged), None)
        if task_id is not None:
            self._progress.remove_task(task_id)

    def on_file_complete(self, outcome: Any) -> None:
        self._finish_task(outcome.file)
        self._emit_timeline("DONE", outcome.filename)

    def on_file_fail(self, outcome: Any) -> None:
        self._finish_task(outcome.file)
        self._emit_timeline("FAIL", outcome.filename, error=outcome.error)

    def on_finish(self, batch: Any) -> None:
        self.stop()
        uploaded = len(batch.succeeded_urls)
        failed = len(batch.failed)
        _echo(f"[bold]Finished[/bold] uploaded={uploaded} total={len(batch)} failed={failed}")
