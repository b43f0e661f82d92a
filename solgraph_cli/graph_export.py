"""Panel graph export helpers for DOT and JSON outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Set

from .models import GraphEdge, Panel


def render_dot(panel: Panel, focus: str = "") -> str:
    """Render *panel* as a Graphviz digraph.

    Trashed nodes are drawn dashed, blacklisted nodes grey.  With *focus*,
    only matching nodes and their direct callers/callees are included.
    """
    nodes = {node.id: node for node in panel.nodes}
    trashed = set(panel.trashed_node_ids)
    blacklisted = set(panel.blacklisted_node_ids)

    selected = _focused_subgraph(panel, focus)

    lines = [f'digraph "{_esc(panel.name)}" {{']
    lines.append("  rankdir=LR;")
    lines.append("  node [shape=box, style=rounded];")

    for node_id in selected["nodes"]:
        node = nodes[node_id]
        attrs = [f'label="{_esc(node.data.contract_name)}\\n{_esc(node.data.label)}"']
        styles = ["rounded"]
        if node_id in trashed:
            styles.append("dashed")
        if node_id in blacklisted:
            styles.append("filled")
            attrs.append('fillcolor="#dddddd"')
            attrs.append('fontcolor="#888888"')
        attrs.append(f'style="{",".join(styles)}"')
        lines.append(f'  "{_esc(node_id)}" [{", ".join(attrs)}];')

    for edge in selected["edges"]:
        attrs = ""
        if edge.source in trashed or edge.target in trashed or edge.source in blacklisted or edge.target in blacklisted:
            attrs = ' [color="#bbbbbb"]'
        lines.append(f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}"{attrs};')

    lines.append("}")
    return "\n".join(lines)


def export_dot(panel: Panel, output_file: Path, focus: str = "") -> None:
    output_file.write_text(render_dot(panel, focus), encoding="utf-8")


def graph_payload(panel: Panel) -> Dict[str, Any]:
    return {
        "panel": {"id": panel.id, "name": panel.name},
        "nodes": [node.to_dict() for node in panel.nodes],
        "edges": [edge.to_dict() for edge in panel.edges],
        "blacklistedNodeIds": list(panel.blacklisted_node_ids),
        "trashedNodeIds": list(panel.trashed_node_ids),
    }


def export_json(panel: Panel, output_file: Path) -> None:
    output_file.write_text(json.dumps(graph_payload(panel), indent=2), encoding="utf-8")


def _focused_subgraph(panel: Panel, focus: str) -> Dict[str, List]:
    node_ids = [node.id for node in panel.nodes]
    known = set(node_ids)
    edges = [e for e in panel.edges if e.source in known and e.target in known]
    if not focus:
        return {"nodes": node_ids, "edges": edges}

    focus_ids: Set[str] = {
        node.id
        for node in panel.nodes
        if focus in node.id or focus in node.data.function_name or focus in node.data.contract_name
    }
    if not focus_ids:
        return {"nodes": node_ids, "edges": edges}

    edge_subset: List[GraphEdge] = [e for e in edges if e.source in focus_ids or e.target in focus_ids]
    node_subset = set(focus_ids)
    for e in edge_subset:
        node_subset.add(e.source)
        node_subset.add(e.target)
    return {"nodes": sorted(node_subset), "edges": edge_subset}


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
