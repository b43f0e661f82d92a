"""Workspace state: panels, annotations, selection and sync.

A :class:`Workspace` owns every panel plus the view state that depends on
them (selection, highlight, recently added ids, last sync stats).  All
mutating actions are silently ignored while the share permission is
``read``; selection changes are always allowed.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Set

from .config import DEFAULT_PANEL_NAME
from .errors import PanelNotFound, ReadOnlyWorkspace
from .layout import LayoutConfig, layout_after_merge
from .merge import compute_sync_stats, merge_graph, unique
from .models import (
    VISIBILITIES,
    FunctionNode,
    Note,
    Panel,
    ParseResult,
    Position,
    SyncStats,
    dedupe_by_id,
)
from .persistence import SHARE_PERMISSIONS, WorkspaceDocument, load_workspace, save_workspace

logger = logging.getLogger(__name__)

NOTE_RESULTS_DEFAULT = 24
NOTE_RESULTS_WITH_QUERY = 80

DEFAULT_CODE = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.19;

contract CallGraphComplex {
    uint256 public total;
    address public owner;

    constructor() {
        owner = msg.sender;
    }

    modifier onlyOwner() {
        _checkOwner();
        _;
    }

    modifier validAmount(uint256 x) {
        require(x > 0, "invalid amount");
        _;
    }

    /* ========= ENTRY POINTS ========= */

    function entryA(uint256 x) external validAmount(x) {
        _routeA(x);
    }

    function entryB(uint256 x) public {
        if (x % 2 == 0) {
            publicAdd(x);
        } else {
            publicSub(x);
        }
    }

    function entryC() external onlyOwner {
        _adminFlow();
    }

    /* ========= PUBLIC FUNCTIONS ========= */

    function publicAdd(uint256 x) public validAmount(x) {
        total += x;
        _postProcess();
    }

    function publicSub(uint256 x) public {
        _preCheck(x);
        total -= x;
        _postProcess();
    }

    function publicReset() public onlyOwner {
        total = 0;
    }

    /* ========= INTERNAL ROUTES ========= */

    function _routeA(uint256 x) internal {
        if (x > 100) {
            _routeB(x);
        } else {
            publicAdd(x);
        }
    }

    function _routeB(uint256 x) internal {
        _routeC(x / 2);
    }

    function _routeC(uint256 x) internal {
        total += x;
        _postProcess();
    }

    /* ========= INTERNAL HELPERS ========= */

    function _preCheck(uint256 x) internal pure {
        require(x < 1000, "too large");
    }

    function _postProcess() internal {
        if (total > 500) {
            _normalize();
        }
    }

    function _normalize() internal {
        total = total / 2;
    }

    function _checkOwner() internal view {
        require(msg.sender == owner, "not owner");
    }

    /* ========= ADMIN FLOW ========= */

    function _adminFlow() internal {
        _sync();
        _finalize();
    }

    function _sync() internal {
        total += 10;
    }

    function _finalize() internal {
        total *= 2;
    }
}
"""


def now_ms() -> int:
    return int(time.time() * 1000)


def create_panel(name: str, code: str = DEFAULT_CODE) -> Panel:
    return Panel(id=str(uuid.uuid4()), name=name, code=code)


# ===================================================================
# Query results
# ===================================================================

@dataclass
class Highlight:
    node_ids: Set[str] = field(default_factory=set)
    edge_ids: Set[str] = field(default_factory=set)


@dataclass
class NoteHit:
    panel_id: str
    panel_name: str
    node_id: str
    content: str
    updated_at: int


@dataclass
class NodeInspection:
    node: FunctionNode
    incoming: List[str]
    outgoing: List[str]
    note: Optional[Note]
    is_blacklisted: bool
    is_trashed: bool


def compute_highlight(panel: Panel, selected_node_id: Optional[str]) -> Highlight:
    """Everything connected to the selection, ignoring hidden nodes.

    Traverses call edges in both directions, skipping any edge with a
    blacklisted or trashed endpoint.  A hidden selection highlights nothing.
    """
    if not selected_node_id:
        return Highlight()
    hidden = set(panel.blacklisted_node_ids) | set(panel.trashed_node_ids)
    if selected_node_id in hidden:
        return Highlight()

    live_edges = [e for e in panel.edges if e.source not in hidden and e.target not in hidden]
    neighbours: Dict[str, List[str]] = {}
    for edge in live_edges:
        neighbours.setdefault(edge.source, []).append(edge.target)
    for edge in live_edges:
        neighbours.setdefault(edge.target, []).append(edge.source)

    reached = {selected_node_id}
    queue = deque([selected_node_id])
    while queue:
        current = queue.popleft()
        for nxt in neighbours.get(current, []):
            if nxt not in reached:
                reached.add(nxt)
                queue.append(nxt)

    edge_ids = {e.id for e in live_edges if e.source in reached and e.target in reached}
    return Highlight(node_ids=reached, edge_ids=edge_ids)


# ===================================================================
# Workspace
# ===================================================================

class Workspace:
    """All panels plus the view state derived from them."""

    def __init__(
        self,
        panels: Optional[Sequence[Panel]] = None,
        active_panel_id: Optional[str] = None,
        share_permission: str = "normal",
        layout_config: Optional[LayoutConfig] = None,
    ) -> None:
        self.panels: List[Panel] = list(panels) if panels else [create_panel(DEFAULT_PANEL_NAME)]
        self.active_panel_id = self.panels[0].id
        self.share_permission = "normal"
        self.layout_config = layout_config or LayoutConfig()
        self.selected_node_id: Optional[str] = None
        self.highlight = Highlight()
        self.recent_node_ids: Set[str] = set()
        self.recent_edge_ids: Set[str] = set()
        self.last_sync_stats: Optional[SyncStats] = None
        self._lock = threading.RLock()
        self._panel_locks: Dict[str, threading.Lock] = {}

        self.set_share_permission(share_permission)
        if active_panel_id and any(p.id == active_panel_id for p in self.panels):
            self.active_panel_id = active_panel_id

    # ------------------------------------------------------------------
    # Loading / saving
    # ------------------------------------------------------------------

    @classmethod
    def from_document(cls, document: WorkspaceDocument, layout_config: Optional[LayoutConfig] = None) -> "Workspace":
        return cls(
            panels=document.panels,
            active_panel_id=document.active_panel_id,
            share_permission=document.share_permission,
            layout_config=layout_config,
        )

    @classmethod
    def load(cls, path: Optional[Path] = None, layout_config: Optional[LayoutConfig] = None) -> "Workspace":
        """Load the saved workspace, or start a fresh one with a default panel."""
        document = load_workspace(path)
        if document is None:
            return cls(layout_config=layout_config)
        return cls.from_document(document, layout_config)

    def to_document(self) -> WorkspaceDocument:
        return WorkspaceDocument(
            active_panel_id=self.active_panel_id,
            panels=list(self.panels),
            share_permission=self.share_permission,
        )

    def save(self, path: Optional[Path] = None) -> Path:
        return save_workspace(self.to_document(), path)

    def hydrate(self, panels: Sequence[Panel], active_panel_id: str) -> None:
        """Replace all panels, dropping duplicate nodes/edges and transient state."""
        if not panels:
            raise ValueError("A workspace needs at least one panel")
        with self._lock:
            for panel in panels:
                panel.nodes = dedupe_by_id(panel.nodes)
                panel.edges = dedupe_by_id(panel.edges)
            self.panels = list(panels)
            self.active_panel_id = active_panel_id if any(p.id == active_panel_id for p in panels) else panels[0].id
            self.recent_node_ids = set()
            self.recent_edge_ids = set()
            self.last_sync_stats = None
            self._refresh_highlight()

    # ------------------------------------------------------------------
    # Permission / lookup
    # ------------------------------------------------------------------

    @property
    def can_mutate(self) -> bool:
        return self.share_permission == "normal"

    def require_mutable(self) -> None:
        if not self.can_mutate:
            raise ReadOnlyWorkspace("Workspace is shared read-only")

    def set_share_permission(self, permission: str) -> None:
        if permission not in SHARE_PERMISSIONS:
            raise ValueError(f"Unknown share permission '{permission}' (expected one of {', '.join(SHARE_PERMISSIONS)})")
        self.share_permission = permission

    @property
    def active_panel(self) -> Panel:
        for panel in self.panels:
            if panel.id == self.active_panel_id:
                return panel
        return self.panels[0]

    def get_panel(self, panel_id: Optional[str] = None) -> Panel:
        if panel_id is None:
            return self.active_panel
        for panel in self.panels:
            if panel.id == panel_id:
                return panel
        raise PanelNotFound(panel_id)

    def find_panel(self, key: str) -> Panel:
        """Look a panel up by id, id prefix, or exact name."""
        for panel in self.panels:
            if panel.id == key:
                return panel
        matches = [p for p in self.panels if p.name == key] or [p for p in self.panels if p.id.startswith(key)]
        if len(matches) == 1:
            return matches[0]
        raise PanelNotFound(key)

    @contextmanager
    def _panel_lock(self, panel_id: str) -> Iterator[None]:
        with self._lock:
            lock = self._panel_locks.setdefault(panel_id, threading.Lock())
        with lock:
            yield

    def _refresh_highlight(self) -> None:
        self.highlight = compute_highlight(self.active_panel, self.selected_node_id)

    # ------------------------------------------------------------------
    # Panel lifecycle
    # ------------------------------------------------------------------

    def create_panel(self, name: Optional[str] = None, code: str = DEFAULT_CODE) -> Optional[Panel]:
        if not self.can_mutate:
            return None
        with self._lock:
            panel = create_panel(name or f"Panel {len(self.panels) + 1}", code)
            self.panels.append(panel)
            self.active_panel_id = panel.id
            self._refresh_highlight()
        logger.debug("Created panel %s (%s)", panel.id, panel.name)
        return panel

    def duplicate_panel(self, panel_id: str) -> Optional[Panel]:
        if not self.can_mutate:
            return None
        with self._lock:
            source = self.get_panel(panel_id)
            copy = source.clone()
            copy.id = str(uuid.uuid4())
            copy.name = f"{source.name} Copy"
            self.panels.append(copy)
            self.active_panel_id = copy.id
            self._refresh_highlight()
        return copy

    def add_panel(self, panel: Panel) -> Optional[Panel]:
        """Add an imported panel under a fresh id and make it active."""
        if not self.can_mutate:
            return None
        with self._lock:
            if any(p.id == panel.id for p in self.panels):
                panel.id = str(uuid.uuid4())
            self.panels.append(panel)
            self.active_panel_id = panel.id
            self._refresh_highlight()
        return panel

    def delete_panel(self, panel_id: str) -> bool:
        """Remove a panel; the last remaining panel is never deleted."""
        if not self.can_mutate:
            return False
        with self._lock:
            if len(self.panels) <= 1:
                return False
            remaining = [p for p in self.panels if p.id != panel_id]
            if len(remaining) == len(self.panels):
                return False
            self.panels = remaining
            self._panel_locks.pop(panel_id, None)
            if self.active_panel_id == panel_id:
                self.active_panel_id = remaining[0].id
            self._refresh_highlight()
        return True

    def set_active_panel(self, panel_id: str) -> None:
        with self._lock:
            self.get_panel(panel_id)
            self.active_panel_id = panel_id
            self._refresh_highlight()

    def rename_panel(self, panel_id: str, name: str) -> bool:
        if not self.can_mutate:
            return False
        self.get_panel(panel_id).name = name
        return True

    def set_code(self, code: str, panel_id: Optional[str] = None) -> bool:
        if not self.can_mutate:
            return False
        self.get_panel(panel_id).code = code
        return True

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync_from_parse_result(self, result: ParseResult, panel_id: Optional[str] = None) -> Optional[SyncStats]:
        """Merge *result* into a panel, lay out new nodes, and record the diff.

        Returns ``None`` when the workspace is read-only.
        """
        if not self.can_mutate:
            logger.debug("Ignoring sync on read-only workspace")
            return None

        panel = self.get_panel(panel_id)
        with self._panel_lock(panel.id):
            before = Panel(
                id=panel.id,
                name=panel.name,
                nodes=list(panel.nodes),
                edges=list(panel.edges),
                trashed_node_ids=list(panel.trashed_node_ids),
            )
            merged = merge_graph(panel, result)
            panel.nodes = layout_after_merge(before.node_ids(), merged, self.layout_config)
            panel.edges = merged.edges
            panel.trashed_node_ids = merged.trashed_node_ids
            panel.auto_trashed_node_ids = merged.auto_trashed_node_ids
            stats = compute_sync_stats(before, panel)

        if panel.id == self.active_panel_id:
            self.recent_node_ids = set(stats.recent_node_ids)
            self.recent_edge_ids = set(stats.recent_edge_ids)
            self.last_sync_stats = stats
            self._refresh_highlight()

        logger.info(
            "Synced panel %s: +%d nodes, +%d edges, -%d nodes, -%d edges",
            panel.name, stats.added_nodes, stats.added_edges, stats.removed_nodes, stats.removed_edges,
        )
        return stats

    # ------------------------------------------------------------------
    # Node actions
    # ------------------------------------------------------------------

    def move_node(self, node_id: str, x: float, y: float) -> bool:
        if not self.can_mutate:
            return False
        node = self.active_panel.get_node(node_id)
        if node is None:
            return False
        node.position = Position(float(x), float(y))
        return True

    def select_node(self, node_id: Optional[str]) -> None:
        self.selected_node_id = node_id
        self._refresh_highlight()

    def upsert_note(self, node_id: str, content: str, updated_at: Optional[int] = None) -> Optional[Note]:
        if not self.can_mutate:
            return None
        panel = self.active_panel
        note = Note(node_id=node_id, content=content, updated_at=now_ms() if updated_at is None else updated_at)
        panel.notes_by_node_id[node_id] = note
        node = panel.get_node(node_id)
        if node is not None:
            node.data.has_note = not note.is_blank
        return note

    def delete_note(self, node_id: str, panel_id: Optional[str] = None) -> bool:
        if not self.can_mutate:
            return False
        panel = self.get_panel(panel_id)
        removed = panel.notes_by_node_id.pop(node_id, None) is not None
        node = panel.get_node(node_id)
        if node is not None:
            node.data.has_note = False
        return removed

    def toggle_blacklist(self, node_id: str) -> Optional[bool]:
        """Flip the blacklist flag; returns the new state."""
        if not self.can_mutate:
            return None
        panel = self.active_panel
        was_blacklisted = node_id in panel.blacklisted_node_ids
        if was_blacklisted:
            panel.blacklisted_node_ids = [i for i in panel.blacklisted_node_ids if i != node_id]
        else:
            panel.blacklisted_node_ids = unique(panel.blacklisted_node_ids + [node_id])
        node = panel.get_node(node_id)
        if node is not None:
            node.data.is_blacklisted = not was_blacklisted
        if not was_blacklisted and self.selected_node_id == node_id:
            self.selected_node_id = None
        self._refresh_highlight()
        return not was_blacklisted

    def trash_node(self, node_id: str) -> bool:
        """Trash a node by hand; it stays trashed when the function reappears."""
        if not self.can_mutate:
            return False
        panel = self.active_panel
        panel.trashed_node_ids = unique(panel.trashed_node_ids + [node_id])
        panel.auto_trashed_node_ids = [i for i in panel.auto_trashed_node_ids if i != node_id]
        if self.selected_node_id == node_id:
            self.selected_node_id = None
        self._refresh_highlight()
        return True

    def restore_node(self, node_id: str) -> bool:
        """Take a node out of the trash; edges are left for the next sync."""
        if not self.can_mutate:
            return False
        panel = self.active_panel
        if node_id not in panel.trashed_node_ids:
            return False
        panel.trashed_node_ids = [i for i in panel.trashed_node_ids if i != node_id]
        panel.auto_trashed_node_ids = [i for i in panel.auto_trashed_node_ids if i != node_id]
        self._refresh_highlight()
        return True

    def set_minimap_position(self, x: float, y: float) -> bool:
        if not self.can_mutate:
            return False
        self.active_panel.minimap = Position(float(x), float(y))
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def visible_functions(self, panel: Optional[Panel] = None) -> List[FunctionNode]:
        """Nodes that are neither blacklisted nor trashed, first occurrence only."""
        panel = panel or self.active_panel
        hidden = set(panel.blacklisted_node_ids) | set(panel.trashed_node_ids)
        seen: Set[str] = set()
        out: List[FunctionNode] = []
        for node in panel.nodes:
            if node.id in hidden or node.id in seen:
                continue
            seen.add(node.id)
            out.append(node)
        return out

    def visibility_counts(self, panel: Optional[Panel] = None) -> Dict[str, int]:
        counts = {v: 0 for v in VISIBILITIES}
        counts["unknown"] = 0
        for node in self.visible_functions(panel):
            counts[node.data.visibility] = counts.get(node.data.visibility, 0) + 1
        return counts

    def filter_functions(
        self,
        query: str = "",
        visibility: str = "all",
        panel: Optional[Panel] = None,
    ) -> List[FunctionNode]:
        """Visible functions matching *query* and *visibility*, sorted by contract then name."""
        needle = query.strip().lower()
        items = []
        for node in self.visible_functions(panel):
            if visibility != "all" and node.data.visibility != visibility:
                continue
            hay = f"{node.id} {node.data.contract_name} {node.data.function_name}".lower()
            if needle and needle not in hay:
                continue
            items.append(node)
        items.sort(key=lambda n: (n.data.contract_name.lower(), n.data.function_name.lower()))
        return items

    def search_notes(self, query: str = "") -> List[NoteHit]:
        """Non-blank notes across all panels, most recently updated first."""
        needle = query.strip().lower()
        hits: List[NoteHit] = []
        for panel in self.panels:
            for note in panel.notes_by_node_id.values():
                if note.is_blank:
                    continue
                if needle and needle not in f"{note.node_id}\n{note.content}".lower():
                    continue
                hits.append(NoteHit(panel.id, panel.name, note.node_id, note.content, note.updated_at))
        hits.sort(key=lambda h: h.updated_at, reverse=True)
        return hits[: NOTE_RESULTS_WITH_QUERY if needle else NOTE_RESULTS_DEFAULT]

    def inspect_node(self, node_id: str, panel: Optional[Panel] = None) -> Optional[NodeInspection]:
        panel = panel or self.active_panel
        node = panel.get_node(node_id)
        if node is None:
            return None
        return NodeInspection(
            node=node,
            incoming=[e.source for e in panel.edges if e.target == node_id],
            outgoing=[e.target for e in panel.edges if e.source == node_id],
            note=panel.notes_by_node_id.get(node_id),
            is_blacklisted=node_id in panel.blacklisted_node_ids,
            is_trashed=node_id in panel.trashed_node_ids,
        )
