"""Incremental merge of a fresh analysis into a user-edited panel graph.

The merge never discards user state: positions of known nodes survive,
notes and blacklist flags are re-derived from the panel's annotation maps,
and nodes that disappeared from the source move to the trash instead of
being deleted.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import replace
from typing import Dict, List, Set

from .layout import radial_position
from .models import (
    FunctionNode,
    FunctionNodeData,
    GraphEdge,
    MergeResult,
    Panel,
    ParseResult,
    Position,
    SyncStats,
    edge_id,
)

logger = logging.getLogger(__name__)


def unique(values: List[str]) -> List[str]:
    """Drop repeated values, keeping first-seen order."""
    return list(dict.fromkeys(values))


def merge_graph(panel: Panel, result: ParseResult) -> MergeResult:
    """Merge *result* into *panel* without mutating either.

    Fresh functions come first in declaration order, followed by every
    previously known node that vanished from the source.  Vanished ids are
    appended to the trash and remembered as auto-trashed; an auto-trashed id
    that is present again leaves the trash, while ids trashed by hand stay.
    Edges are rebuilt only between fresh nodes.
    """
    existing_by_id: Dict[str, FunctionNode] = {node.id: node for node in panel.nodes}
    blacklisted = set(panel.blacklisted_node_ids)

    next_nodes: List[FunctionNode] = []
    present: Set[str] = set()

    for fn in result.functions:
        node_id = fn.id or f"{fn.contract_name}.{fn.function_name}"
        if node_id in present:
            continue
        present.add(node_id)

        data = FunctionNodeData(
            label=f"{fn.function_name}()",
            contract_name=fn.contract_name,
            function_name=fn.function_name,
            visibility=fn.visibility,
            is_blacklisted=node_id in blacklisted,
            has_note=panel.has_note(node_id),
        )

        existing = existing_by_id.get(node_id)
        if existing is not None:
            next_nodes.append(replace(
                existing,
                position=Position(existing.position.x, existing.position.y),
                data=data,
                extra=copy.deepcopy(existing.extra),
            ))
        else:
            next_nodes.append(FunctionNode(
                id=node_id,
                position=radial_position(len(next_nodes), node_id),
                data=data,
            ))

    vanished = [node_id for node_id in existing_by_id if node_id not in present]
    previously_trashed = set(panel.trashed_node_ids)
    auto_trashed = [
        node_id for node_id in panel.auto_trashed_node_ids
        if node_id in previously_trashed and node_id not in present
    ]
    auto_trashed = unique(auto_trashed + [i for i in vanished if i not in previously_trashed])
    returned = {i for i in panel.auto_trashed_node_ids if i in present}
    trashed = unique([i for i in panel.trashed_node_ids if i not in returned] + vanished)
    next_nodes.extend(copy.deepcopy(existing_by_id[node_id]) for node_id in vanished)

    next_edges: List[GraphEdge] = []
    seen_edges: Set[str] = set()
    for edge in result.edges:
        if edge.source not in present or edge.target not in present:
            continue
        key = edge_id(edge.source, edge.target)
        if key in seen_edges:
            continue
        seen_edges.add(key)
        next_edges.append(GraphEdge(id=key, source=edge.source, target=edge.target))

    logger.debug(
        "Merged %d functions into panel %s: %d nodes, %d edges, %d vanished",
        len(result.functions), panel.id, len(next_nodes), len(next_edges), len(vanished),
    )
    return MergeResult(
        nodes=next_nodes,
        edges=next_edges,
        trashed_node_ids=trashed,
        auto_trashed_node_ids=auto_trashed,
    )


def compute_sync_stats(before: Panel, after: Panel) -> SyncStats:
    """Diff two versions of a panel for sync feedback."""
    prev_nodes = before.node_ids()
    prev_edges = before.edge_ids()
    prev_trashed = set(before.trashed_node_ids)

    next_edges = after.edge_ids()
    recent_nodes = {node.id for node in after.nodes if node.id not in prev_nodes}
    recent_edges = {edge.id for edge in after.edges if edge.id not in prev_edges}

    return SyncStats(
        added_nodes=len(recent_nodes),
        added_edges=len(recent_edges),
        removed_nodes=sum(1 for node_id in after.trashed_node_ids if node_id not in prev_trashed),
        removed_edges=len(prev_edges - next_edges),
        at=int(time.time() * 1000),
        recent_node_ids=recent_nodes,
        recent_edge_ids=recent_edges,
    )
