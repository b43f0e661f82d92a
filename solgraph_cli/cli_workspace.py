"""Panel, node and note commands."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import typer
from rich.table import Table

from .cli_common import console, fail, workspace_session
from .cli_groups import node_grp, note_grp, panel_grp
from .locate import find_function_location, label_from_node_id
from .store import compute_highlight


# ===================================================================
# sg panel
# ===================================================================

@panel_grp.command("list")
def list_panels():
    """List panels; the active one is marked with ``*``."""
    with workspace_session(save=False) as ws:
        table = Table(title="Panels", show_lines=False)
        table.add_column("", width=1)
        table.add_column("Name", style="cyan")
        table.add_column("Id", style="dim")
        table.add_column("Nodes", justify="right", style="green")
        table.add_column("Edges", justify="right", style="green")
        table.add_column("Trashed", justify="right", style="red")
        for panel in ws.panels:
            table.add_row(
                "*" if panel.id == ws.active_panel_id else "",
                panel.name,
                panel.id[:8],
                str(len(panel.nodes)),
                str(len(panel.edges)),
                str(len(panel.trashed_node_ids)),
            )
        console.print(table)
        if ws.share_permission == "read":
            console.print("[yellow]Workspace is shared read-only.[/yellow]")


@panel_grp.command("create")
def create_panel(name: Optional[str] = typer.Argument(None, help="Panel name (default: 'Panel N').")):
    """Create a panel with the sample contract and make it active."""
    with workspace_session() as ws:
        ws.require_mutable()
        panel = ws.create_panel(name)
        console.print(f"[green]✓[/green] Created panel '{panel.name}' ({panel.id[:8]})")


@panel_grp.command("duplicate")
def duplicate_panel(key: str = typer.Argument(..., help="Panel name or id.")):
    """Copy a panel with its graph and annotations."""
    with workspace_session() as ws:
        ws.require_mutable()
        panel = ws.duplicate_panel(ws.find_panel(key).id)
        console.print(f"[green]✓[/green] Created panel '{panel.name}' ({panel.id[:8]})")


@panel_grp.command("delete")
def delete_panel(key: str = typer.Argument(..., help="Panel name or id.")):
    """Delete a panel. The last remaining panel cannot be deleted."""
    with workspace_session() as ws:
        ws.require_mutable()
        panel = ws.find_panel(key)
        if not ws.delete_panel(panel.id):
            fail("Cannot delete the last panel.")
        console.print(f"[green]✓[/green] Deleted panel '{panel.name}'")


@panel_grp.command("rename")
def rename_panel(
    key: str = typer.Argument(..., help="Panel name or id."),
    name: str = typer.Argument(..., help="New name."),
):
    """Rename a panel."""
    with workspace_session() as ws:
        ws.require_mutable()
        panel = ws.find_panel(key)
        ws.rename_panel(panel.id, name)
        console.print(f"[green]✓[/green] Renamed panel to '{name}'")


@panel_grp.command("use")
def use_panel(key: str = typer.Argument(..., help="Panel name or id.")):
    """Switch the active panel."""
    with workspace_session() as ws:
        panel = ws.find_panel(key)
        ws.set_active_panel(panel.id)
        console.print(f"Active panel: [cyan]{panel.name}[/cyan]")


# ===================================================================
# sg node
# ===================================================================

def _require_node(ws, node_id: str) -> None:
    if ws.active_panel.get_node(node_id) is None:
        fail(f"Node '{node_id}' not found in panel '{ws.active_panel.name}'.")


@node_grp.command("inspect")
def inspect_node(node_id: str = typer.Argument(..., help="Function id, e.g. Token.transfer")):
    """Show a node's callers, callees, flags and note."""
    with workspace_session(save=False) as ws:
        info = ws.inspect_node(node_id)
        if info is None:
            fail(f"Node '{node_id}' not found in panel '{ws.active_panel.name}'.")
        node = info.node
        console.print(f"[bold cyan]{label_from_node_id(node.id)}[/bold cyan]  [dim]{node.id}[/dim]")
        console.print(f"  Visibility: {node.data.visibility}")
        console.print(f"  Position:   ({node.position.x:.1f}, {node.position.y:.1f})")
        flags = [name for name, on in (("blacklisted", info.is_blacklisted), ("trashed", info.is_trashed)) if on]
        if flags:
            console.print(f"  Flags:      [yellow]{', '.join(flags)}[/yellow]")
        console.print(f"  Callers ({len(info.incoming)}):")
        for caller in info.incoming:
            console.print(f"    ← {caller}")
        console.print(f"  Callees ({len(info.outgoing)}):")
        for callee in info.outgoing:
            console.print(f"    → {callee}")
        connected = compute_highlight(ws.active_panel, node.id)
        if connected.node_ids:
            console.print(f"  Connected:  {len(connected.node_ids) - 1} node(s)")
        if info.note is not None and not info.note.is_blank:
            console.print(f"  Note:       {info.note.content}")


@node_grp.command("trash")
def trash_node(node_id: str = typer.Argument(..., help="Function id.")):
    """Hide a node by moving it to the trash."""
    with workspace_session() as ws:
        ws.require_mutable()
        _require_node(ws, node_id)
        ws.trash_node(node_id)
        console.print(f"[green]✓[/green] Trashed {node_id}")


@node_grp.command("restore")
def restore_node(node_id: str = typer.Argument(..., help="Function id.")):
    """Take a node out of the trash."""
    with workspace_session() as ws:
        ws.require_mutable()
        if not ws.restore_node(node_id):
            fail(f"Node '{node_id}' is not in the trash.")
        console.print(f"[green]✓[/green] Restored {node_id}")


@node_grp.command("blacklist")
def blacklist_node(node_id: str = typer.Argument(..., help="Function id.")):
    """Toggle the blacklist flag of a node."""
    with workspace_session() as ws:
        ws.require_mutable()
        _require_node(ws, node_id)
        state = ws.toggle_blacklist(node_id)
        verb = "Blacklisted" if state else "Un-blacklisted"
        console.print(f"[green]✓[/green] {verb} {node_id}")


@node_grp.command("move")
def move_node(
    node_id: str = typer.Argument(..., help="Function id."),
    x: float = typer.Argument(..., help="New x coordinate."),
    y: float = typer.Argument(..., help="New y coordinate."),
):
    """Pin a node at a new position."""
    with workspace_session() as ws:
        ws.require_mutable()
        if not ws.move_node(node_id, x, y):
            fail(f"Node '{node_id}' not found in panel '{ws.active_panel.name}'.")
        console.print(f"[green]✓[/green] Moved {node_id} to ({x:g}, {y:g})")


@node_grp.command("locate")
def locate_node(node_id: str = typer.Argument(..., help="Function id.")):
    """Print the line:column of a function in the panel's source."""
    with workspace_session(save=False) as ws:
        location = find_function_location(ws.active_panel.code, node_id)
        if location is None:
            fail(f"Could not locate '{node_id}' in the panel source.")
        console.print(f"{label_from_node_id(node_id)} at line {location.line}, column {location.column}")


# ===================================================================
# sg note
# ===================================================================

@note_grp.command("set")
def set_note(
    node_id: str = typer.Argument(..., help="Function id."),
    content: str = typer.Argument(..., help="Note text."),
):
    """Create or replace the note on a node."""
    with workspace_session() as ws:
        ws.require_mutable()
        ws.upsert_note(node_id, content)
        console.print(f"[green]✓[/green] Saved note on {node_id}")


@note_grp.command("delete")
def delete_note(
    node_id: str = typer.Argument(..., help="Function id."),
    panel: Optional[str] = typer.Option(None, "--panel", "-p", help="Panel name or id (default: active)."),
):
    """Delete the note on a node."""
    with workspace_session() as ws:
        ws.require_mutable()
        target = ws.find_panel(panel) if panel else ws.active_panel
        if not ws.delete_note(node_id, target.id):
            fail(f"No note on '{node_id}'.")
        console.print(f"[green]✓[/green] Deleted note on {node_id}")


@note_grp.command("list")
def list_notes(query: str = typer.Option("", "--query", "-q", help="Filter by node id or text.")):
    """List notes across all panels, most recent first."""
    with workspace_session(save=False) as ws:
        hits = ws.search_notes(query)
        if not hits:
            console.print("[yellow]No notes found.[/yellow]")
            return
        for hit in hits:
            stamp = datetime.fromtimestamp(hit.updated_at / 1000).strftime("%Y-%m-%d %H:%M")
            console.print(f"[cyan]{hit.node_id}[/cyan] [dim]({hit.panel_name}, {stamp})[/dim]")
            console.print(f"  {hit.content.strip()}")
