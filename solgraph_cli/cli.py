"""Typer-based CLI for SolGraph Solidity call graphs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from . import __version__
from .cli_common import (
    console,
    fail,
    functions_table,
    open_coordinator,
    print_sync_stats,
    resolve_panel,
    setup_logging,
    workspace_session,
)
from .cli_groups import config_grp, export_grp, import_grp, node_grp, note_grp, panel_grp
from .cli_watch import watch
from .config import SUPPORTED_EXTENSIONS
from .config_manager import DEFAULT_CONFIGS, clear_section, coerce_value, load_full_config, load_section, save_section
from .graph_export import export_dot, export_json
from .parser import SolidityAnalyzer
from .persistence import SHARE_PERMISSIONS, export_panel_snapshot, import_panel_snapshot

# Registers commands on the panel/node/note groups.
from . import cli_workspace  # noqa: F401

app = typer.Typer(
    help="🔗 SolGraph CLI — Solidity function call graphs that keep your layout and notes.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(panel_grp, name="panel")
app.add_typer(node_grp, name="node")
app.add_typer(note_grp, name="note")
app.add_typer(export_grp, name="export")
app.add_typer(import_grp, name="import")
app.add_typer(config_grp, name="config")

app.command("watch")(watch)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"SolGraph CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """SolGraph CLI: analyze Solidity sources into persistent call-graph panels."""
    setup_logging(verbose)


def _read_source(file: Path) -> str:
    if file.suffix.lower() not in SUPPORTED_EXTENSIONS:
        console.print(f"[yellow]⚠ {file.name} does not look like a Solidity file.[/yellow]")
    try:
        return file.read_text(encoding="utf-8", errors="ignore")
    except OSError as exc:
        fail(f"Could not read {file}: {exc}")


# ===================================================================
# Analysis
# ===================================================================

@app.command("analyze")
def analyze(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Solidity source file."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw analysis JSON."),
):
    """Analyze a Solidity file once and print functions and call edges."""
    analyzer = SolidityAnalyzer()
    if not analyzer.available:
        fail("Solidity grammar is not available (install tree-sitter-language-pack).")
    result = analyzer.analyze(_read_source(file))

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    if result.is_empty:
        console.print(f"[yellow]⚠ No functions found in {file.name}.[/yellow]")
        return

    table = functions_table(f"Functions in {file.name}")
    for fn in result.functions:
        table.add_row(fn.id, fn.contract_name, f"{fn.function_name}()", fn.visibility)
    console.print(table)

    if result.edges:
        console.print("\n[bold]Calls[/bold]")
        for edge in result.edges:
            console.print(f"  {edge.source} → {edge.target}")
    console.print(f"\n[dim]{len(result.functions)} functions, {len(result.edges)} edges[/dim]")


@app.command("sync")
def sync(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Solidity source file."),
    panel: Optional[str] = typer.Option(None, "--panel", "-p", help="Panel name or id (default: active)."),
    as_json: bool = typer.Option(False, "--json", help="Print the sync diff as JSON."),
):
    """Load a file into a panel and merge the fresh call graph into it."""
    code = _read_source(file)
    with workspace_session() as ws:
        ws.require_mutable()
        target = resolve_panel(ws, panel)
        ws.set_code(code, target.id)
        with open_coordinator() as coordinator:
            result = coordinator.analyze(code, channel=target.id)
        stats = ws.sync_from_parse_result(result, target.id)
        if as_json and stats is not None:
            typer.echo(json.dumps(stats.to_dict(), indent=2))
        else:
            print_sync_stats(stats, target)


@app.command("functions")
def functions(
    query: str = typer.Option("", "--query", "-q", help="Filter by id, contract or function name."),
    visibility: str = typer.Option("all", "--visibility", help="all, public, external, internal, private, unknown."),
):
    """List visible functions of the active panel."""
    allowed = ("all", "public", "external", "internal", "private", "unknown")
    if visibility not in allowed:
        raise typer.BadParameter(f"Visibility must be one of: {', '.join(allowed)}")

    with workspace_session(save=False) as ws:
        items = ws.filter_functions(query, visibility)
        counts = ws.visibility_counts()
        table = functions_table(f"Functions — {ws.active_panel.name}")
        for node in items:
            table.add_row(node.id, node.data.contract_name, node.data.label, node.data.visibility)
        console.print(table)
        summary = "  ".join(f"{k}: {v}" for k, v in counts.items())
        console.print(f"[dim]all: {sum(counts.values())}  {summary}[/dim]")


@app.command("share")
def share(permission: str = typer.Argument(..., help="normal or read.")):
    """Set the share permission (read makes the workspace read-only)."""
    if permission not in SHARE_PERMISSIONS:
        raise typer.BadParameter(f"Permission must be one of: {', '.join(SHARE_PERMISSIONS)}")
    with workspace_session() as ws:
        ws.set_share_permission(permission)
        console.print(f"Share permission: [cyan]{permission}[/cyan]")


# ===================================================================
# Export / import
# ===================================================================

@export_grp.command("dot")
def export_dot_cmd(
    focus: str = typer.Argument("", help="Optional focus symbol to export a local subgraph."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    panel: Optional[str] = typer.Option(None, "--panel", "-p", help="Panel name or id (default: active)."),
):
    """Export a panel graph to Graphviz DOT."""
    with workspace_session(save=False) as ws:
        target = resolve_panel(ws, panel)
        output = output or Path.cwd() / f"{target.name.replace(' ', '_')}_graph.dot"
        export_dot(target, output, focus=focus)
        typer.echo(f"Exported graph to {output}")


@export_grp.command("json")
def export_json_cmd(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    panel: Optional[str] = typer.Option(None, "--panel", "-p", help="Panel name or id (default: active)."),
):
    """Export a panel's nodes and edges to JSON."""
    with workspace_session(save=False) as ws:
        target = resolve_panel(ws, panel)
        output = output or Path.cwd() / f"{target.name.replace(' ', '_')}_graph.json"
        export_json(target, output)
        typer.echo(f"Exported graph to {output}")


@export_grp.command("snapshot")
def export_snapshot_cmd(
    panel: Optional[str] = typer.Option(None, "--panel", "-p", help="Panel name or id (default: active)."),
):
    """Print a portable snapshot string of a panel."""
    with workspace_session(save=False) as ws:
        typer.echo(export_panel_snapshot(resolve_panel(ws, panel)))


@import_grp.command("snapshot")
def import_snapshot_cmd(snapshot: str = typer.Argument(..., help="Snapshot string from 'sg export snapshot'.")):
    """Add a panel from a snapshot string and make it active."""
    with workspace_session() as ws:
        ws.require_mutable()
        panel = ws.add_panel(import_panel_snapshot(snapshot))
        console.print(f"[green]✓[/green] Imported panel '{panel.name}' ({len(panel.nodes)} nodes)")


# ===================================================================
# Configuration
# ===================================================================

@config_grp.command("show")
def config_show():
    """Show effective settings (defaults merged with config.toml)."""
    stored = load_full_config()
    table = Table(title="Configuration", show_lines=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_column("Source", style="dim")
    for section in DEFAULT_CONFIGS:
        values = load_section(section)
        overridden = stored.get(section) or {}
        for key, value in values.items():
            table.add_row(f"{section}.{key}", str(value), "config" if key in overridden else "default")
    console.print(table)


@config_grp.command("set")
def config_set(
    section: str = typer.Argument(..., help="Section: layout, analysis or sync."),
    key: str = typer.Argument(..., help="Setting name."),
    value: str = typer.Argument(..., help="New value."),
):
    """Change one setting."""
    if section not in DEFAULT_CONFIGS:
        raise typer.BadParameter(f"Section must be one of: {', '.join(DEFAULT_CONFIGS)}")
    try:
        coerced = coerce_value(section, key, value)
    except KeyError:
        raise typer.BadParameter(f"Unknown setting '{section}.{key}'")
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    if not save_section(section, {key: coerced}):
        fail("Could not write configuration file.")
    console.print(f"[green]✓[/green] {section}.{key} = {coerced}")


@config_grp.command("reset")
def config_reset(section: Optional[str] = typer.Argument(None, help="Section to reset (default: all).")):
    """Reset settings to defaults."""
    sections = [section] if section else list(DEFAULT_CONFIGS)
    for name in sections:
        if name not in DEFAULT_CONFIGS:
            raise typer.BadParameter(f"Section must be one of: {', '.join(DEFAULT_CONFIGS)}")
        clear_section(name)
    console.print(f"[green]✓[/green] Reset {', '.join(sections)} to defaults")


if __name__ == "__main__":
    app()
