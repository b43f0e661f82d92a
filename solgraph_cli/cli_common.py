"""Shared helpers for CLI command modules."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config_manager import load_analysis_config, load_layout_config
from .coordinator import AnalysisCoordinator
from .errors import SolGraphError
from .layout import LayoutConfig
from .models import Panel, SyncStats
from .store import Workspace

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=verbose, show_path=False)],
        force=True,
    )


def fail(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")
    raise typer.Exit(1)


def load_workspace() -> Workspace:
    return Workspace.load(layout_config=LayoutConfig.from_mapping(load_layout_config()))


@contextmanager
def workspace_session(save: bool = True) -> Iterator[Workspace]:
    """Load the workspace, yield it, and save it afterwards.

    SolGraph errors raised by the command body become a red message and
    exit code 1; nothing is saved in that case.
    """
    ws = load_workspace()
    try:
        yield ws
    except SolGraphError as exc:
        fail(str(exc))
    if save:
        ws.save()


def open_coordinator() -> AnalysisCoordinator:
    settings = load_analysis_config()
    return AnalysisCoordinator(
        use_workers=bool(settings.get("use_workers", True)),
        max_workers=int(settings.get("max_workers", 1)),
    )


def resolve_panel(ws: Workspace, key: Optional[str]) -> Panel:
    return ws.find_panel(key) if key else ws.active_panel


def print_sync_stats(stats: Optional[SyncStats], panel: Panel) -> None:
    if stats is None:
        console.print("[yellow]Workspace is read-only; nothing synced.[/yellow]")
        return
    if stats.is_noop:
        console.print(f"[dim]{panel.name}: no changes[/dim]")
        return
    console.print(
        f"[green]✓[/green] {panel.name}: "
        f"[green]+{stats.added_nodes}[/green] nodes, [green]+{stats.added_edges}[/green] edges, "
        f"[red]-{stats.removed_nodes}[/red] nodes, [red]-{stats.removed_edges}[/red] edges"
    )


def functions_table(title: str) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("Id", style="cyan")
    table.add_column("Contract", style="magenta")
    table.add_column("Function")
    table.add_column("Visibility", style="green")
    return table
