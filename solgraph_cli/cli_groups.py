"""Command hierarchy groups for organized CLI experience.

Provides logical grouping of commands under:
  sg panel   — Panel lifecycle
  sg node    — Per-node actions on the active panel
  sg note    — Node notes
  sg export  — DOT / JSON / snapshot output
  sg import  — Snapshot import
  sg config  — Configuration management
"""

from __future__ import annotations

import typer

# ── Panel group ──────────────────────────────────────────────
panel_grp = typer.Typer(
    help="🗂️  Panels — create, switch, rename and delete workspaces.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ── Node group ───────────────────────────────────────────────
node_grp = typer.Typer(
    help="🔘 Nodes — inspect, trash, restore, blacklist, move and locate.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ── Note group ───────────────────────────────────────────────
note_grp = typer.Typer(
    help="📝 Notes — annotate functions and search annotations.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ── Export / import groups ───────────────────────────────────
export_grp = typer.Typer(
    help="📤 Export — Graphviz DOT, JSON or a panel snapshot.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

import_grp = typer.Typer(
    help="📥 Import — add a panel from a snapshot string.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ── Configuration group ──────────────────────────────────────
config_grp = typer.Typer(
    help="⚙️  Configuration — layout, analysis and sync settings.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
