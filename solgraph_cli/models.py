"""Core data models shared by the analyzer, merger, layout and store layers."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Set

Visibility = Literal["public", "private", "internal", "external", "unknown"]

VISIBILITIES = ("public", "private", "internal", "external")


def normalize_visibility(value: Optional[str]) -> Visibility:
    if value in VISIBILITIES:
        return value  # type: ignore[return-value]
    return "unknown"


def edge_id(source: str, target: str) -> str:
    return f"{source}->{target}"


# ===================================================================
# Analysis output
# ===================================================================

@dataclass(frozen=True)
class ParseFunction:
    id: str
    contract_name: str
    function_name: str
    visibility: Visibility = "unknown"

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "contractName": self.contract_name,
            "functionName": self.function_name,
            "visibility": self.visibility,
        }


@dataclass(frozen=True)
class ParseEdge:
    source: str
    target: str

    @property
    def id(self) -> str:
        return edge_id(self.source, self.target)

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "target": self.target}


@dataclass
class ParseResult:
    """Stateless snapshot of one analysis pass."""

    functions: List[ParseFunction] = field(default_factory=list)
    edges: List[ParseEdge] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "ParseResult":
        return cls([], [])

    @property
    def is_empty(self) -> bool:
        return not self.functions and not self.edges

    def to_dict(self) -> Dict[str, List[Dict[str, str]]]:
        return {
            "functions": [f.to_dict() for f in self.functions],
            "edges": [e.to_dict() for e in self.edges],
        }


# ===================================================================
# Panel graph
# ===================================================================

@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], default: Optional["Position"] = None) -> "Position":
        if not isinstance(data, dict):
            return Position(default.x, default.y) if default else Position()
        return cls(x=float(data.get("x", 0.0)), y=float(data.get("y", 0.0)))


@dataclass
class FunctionNodeData:
    label: str
    contract_name: str
    function_name: str
    visibility: Visibility = "unknown"
    is_blacklisted: bool = False
    has_note: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "contractName": self.contract_name,
            "functionName": self.function_name,
            "visibility": self.visibility,
            "isBlacklisted": self.is_blacklisted,
            "hasNote": self.has_note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FunctionNodeData":
        return cls(
            label=data.get("label", ""),
            contract_name=data.get("contractName", ""),
            function_name=data.get("functionName", ""),
            visibility=normalize_visibility(data.get("visibility")),
            is_blacklisted=bool(data.get("isBlacklisted", False)),
            has_note=bool(data.get("hasNote", False)),
        )


@dataclass
class FunctionNode:
    """A graph node wrapping one function identity.

    ``extra`` keeps view fields (selection, measured size, ...) that the
    analyzer does not drive, so a merge can carry them over untouched.
    """

    id: str
    position: Position
    data: FunctionNodeData
    type: str = "function"
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        payload.update({
            "id": self.id,
            "type": self.type,
            "position": self.position.to_dict(),
            "data": self.data.to_dict(),
        })
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FunctionNode":
        extra = {k: v for k, v in data.items() if k not in ("id", "type", "position", "data")}
        return cls(
            id=data["id"],
            type=data.get("type", "function"),
            position=Position.from_dict(data.get("position")),
            data=FunctionNodeData.from_dict(data.get("data") or {}),
            extra=extra,
        )


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    type: str = "bezier"

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "source": self.source, "target": self.target, "type": self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphEdge":
        source = data["source"]
        target = data["target"]
        return cls(
            id=data.get("id") or edge_id(source, target),
            source=source,
            target=target,
            type=data.get("type", "bezier"),
        )


@dataclass
class Note:
    node_id: str
    content: str
    updated_at: int = 0

    @property
    def is_blank(self) -> bool:
        return not self.content.strip()

    def to_dict(self) -> Dict[str, Any]:
        return {"nodeId": self.node_id, "content": self.content, "updatedAt": self.updated_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Note":
        return cls(
            node_id=data.get("nodeId", ""),
            content=data.get("content") or "",
            updated_at=int(data.get("updatedAt") or 0),
        )


DEFAULT_MINIMAP = Position(16.0, 16.0)


@dataclass
class Panel:
    """A persistent user workspace: source, live graph and annotations."""

    id: str
    name: str
    code: str = ""
    nodes: List[FunctionNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    notes_by_node_id: Dict[str, Note] = field(default_factory=dict)
    blacklisted_node_ids: List[str] = field(default_factory=list)
    trashed_node_ids: List[str] = field(default_factory=list)
    # Trashed because the function vanished from the source; re-adding it un-trashes.
    auto_trashed_node_ids: List[str] = field(default_factory=list)
    minimap: Position = field(default_factory=lambda: Position(DEFAULT_MINIMAP.x, DEFAULT_MINIMAP.y))

    def node_ids(self) -> Set[str]:
        return {n.id for n in self.nodes}

    def edge_ids(self) -> Set[str]:
        return {e.id for e in self.edges}

    def get_node(self, node_id: str) -> Optional[FunctionNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def has_note(self, node_id: str) -> bool:
        note = self.notes_by_node_id.get(node_id)
        return note is not None and not note.is_blank

    def clone(self) -> "Panel":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "notesByNodeId": {k: v.to_dict() for k, v in self.notes_by_node_id.items()},
            "blacklistedNodeIds": list(self.blacklisted_node_ids),
            "trashedNodeIds": list(self.trashed_node_ids),
            "autoTrashedNodeIds": list(self.auto_trashed_node_ids),
            "minimap": self.minimap.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Panel":
        """Build a panel, filling annotation fields an older document may lack."""
        notes = data.get("notesByNodeId") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            code=data.get("code") or "",
            nodes=dedupe_by_id([FunctionNode.from_dict(n) for n in data.get("nodes") or []]),
            edges=dedupe_by_id([GraphEdge.from_dict(e) for e in data.get("edges") or []]),
            notes_by_node_id={k: Note.from_dict({"nodeId": k, **v}) for k, v in notes.items()},
            blacklisted_node_ids=list(data.get("blacklistedNodeIds") or []),
            trashed_node_ids=list(data.get("trashedNodeIds") or []),
            auto_trashed_node_ids=list(data.get("autoTrashedNodeIds") or []),
            minimap=Position.from_dict(data.get("minimap"), default=DEFAULT_MINIMAP),
        )


def dedupe_by_id(items: List[Any]) -> List[Any]:
    seen: Set[str] = set()
    out: List[Any] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


# ===================================================================
# Merge / sync results
# ===================================================================

@dataclass
class MergeResult:
    nodes: List[FunctionNode]
    edges: List[GraphEdge]
    trashed_node_ids: List[str]
    auto_trashed_node_ids: List[str] = field(default_factory=list)


@dataclass
class SyncStats:
    """Diff summary of one sync, used for UI feedback."""

    added_nodes: int
    added_edges: int
    removed_nodes: int
    removed_edges: int
    at: int = 0
    recent_node_ids: Set[str] = field(default_factory=set)
    recent_edge_ids: Set[str] = field(default_factory=set)

    @property
    def is_noop(self) -> bool:
        return not (self.added_nodes or self.added_edges or self.removed_nodes or self.removed_edges)

    def to_dict(self) -> Dict[str, int]:
        return {
            "addedNodes": self.added_nodes,
            "addedEdges": self.added_edges,
            "removedNodes": self.removed_nodes,
            "removedEdges": self.removed_edges,
            "at": self.at,
        }


@dataclass(frozen=True)
class SourceLocation:
    line: int
    column: int
    length: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"
