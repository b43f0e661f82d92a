"""Solidity source analyzer built on Tree-sitter.

Turns one compilation unit of Solidity source into a
:class:`~solgraph_cli.models.ParseResult`:

- Error-tolerant parsing (Tree-sitter recovers from broken syntax, so a
  half-typed function does not wipe the rest of the graph)
- One node per function-like declaration, keyed by a stable
  ``Contract.function`` / ``Contract.function#N`` identity
- Call edges resolved by :mod:`solgraph_cli.resolver`

The analyzer never raises: any failure yields an empty ``ParseResult``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from tree_sitter import Parser as TSParser  # type: ignore[import-untyped]
from tree_sitter_language_pack import get_parser  # type: ignore[import-untyped]

from .models import ParseFunction, ParseResult, VISIBILITIES, normalize_visibility
from .resolver import CallResolver, CallSite, InheritanceResolver, TargetTable

logger = logging.getLogger(__name__)

CONTRACT_TYPES = frozenset({
    "contract_declaration",
    "interface_declaration",
    "library_declaration",
})

FUNCTION_TYPES = frozenset({
    "function_definition",
    "constructor_definition",
    "fallback_receive_definition",
})

# Wrapper nodes that hold exactly one meaningful expression.
_TRANSPARENT_TYPES = frozenset({"expression", "parenthesized_expression"})

_IDENTIFIER_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")

DEFAULT_CONTRACT_NAME = "Contract"
DEFAULT_FUNCTION_NAME = "unknown"


@dataclass
class _FunctionRecord:
    function: ParseFunction
    body: Any = None


@dataclass
class _ContractRecord:
    name: str
    bases: List[str] = field(default_factory=list)
    members: List[Any] = field(default_factory=list)


# ===================================================================
# Tree-sitter helpers
# ===================================================================

def _text(node: Any) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def _compact(text: str) -> str:
    return "".join(text.split())


def _iter_preorder(root: Any) -> Iterator[Any]:
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _unwrap(node: Any) -> Any:
    while node is not None and node.type in _TRANSPARENT_TYPES and node.named_child_count == 1:
        node = node.named_children[0]
    return node


def _field_or_first_named(node: Any, field_name: str, last: bool = False) -> Any:
    child = node.child_by_field_name(field_name)
    if child is not None:
        return child
    named = node.named_children
    if not named:
        return None
    return named[-1] if last else named[0]


def _child_of_type(node: Any, node_type: str) -> Any:
    for child in node.children:
        if child.type == node_type:
            return child
    return None


# ===================================================================
# Analyzer
# ===================================================================

class SolidityAnalyzer:
    """Extract functions and resolved call edges from Solidity source."""

    def __init__(self, parser: Optional[TSParser] = None) -> None:
        self._parser = parser if parser is not None else _load_parser()

    @property
    def available(self) -> bool:
        return self._parser is not None

    def analyze(self, code: str) -> ParseResult:
        if self._parser is None:
            logger.warning("Solidity grammar unavailable; returning empty analysis")
            return ParseResult.empty()
        try:
            tree = self._parser.parse(code.encode("utf-8"))
            return self._analyze_tree(tree.root_node)
        except Exception as exc:
            logger.warning("Failed to analyze Solidity source: %s", exc)
            return ParseResult.empty()

    def analyze_file(self, file_path: Path) -> ParseResult:
        try:
            code = file_path.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            logger.warning("Could not read %s: %s", file_path, exc)
            return ParseResult.empty()
        return self.analyze(code)

    # ------------------------------------------------------------------
    # Declaration pass
    # ------------------------------------------------------------------

    def _analyze_tree(self, root: Any) -> ParseResult:
        contracts = [self._read_contract(node) for node in self._contract_nodes(root)]

        records: List[_FunctionRecord] = []
        own_tables: Dict[str, TargetTable] = {}
        bases: Dict[str, List[str]] = {}
        seen: Dict[str, int] = {}

        for contract in contracts:
            if contract.bases:
                bases[contract.name] = contract.bases
            for member in contract.members:
                name = self._display_name(member)
                base_id = f"{contract.name}.{name}"
                occurrence = seen.get(base_id, 0) + 1
                seen[base_id] = occurrence
                fn_id = base_id if occurrence == 1 else f"{base_id}#{occurrence}"

                records.append(_FunctionRecord(
                    function=ParseFunction(
                        id=fn_id,
                        contract_name=contract.name,
                        function_name=name,
                        visibility=self._visibility(member),
                    ),
                    body=self._body(member),
                ))
                own_tables.setdefault(contract.name, {}).setdefault(name, []).append(fn_id)

        # -- Edge pass ------------------------------------------------------
        resolver = CallResolver(InheritanceResolver(own_tables, bases))
        calls: List[Tuple[ParseFunction, List[CallSite]]] = [
            (record.function, self._call_sites(record.body))
            for record in records
            if record.body is not None
        ]
        edges = resolver.resolve_edges(calls)

        functions = [record.function for record in records]
        logger.debug(
            "Analyzed %d contracts: %d functions, %d edges",
            len(contracts), len(functions), len(edges),
        )
        return ParseResult(functions=functions, edges=edges)

    @staticmethod
    def _contract_nodes(root: Any) -> List[Any]:
        found: List[Any] = []
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type in CONTRACT_TYPES:
                found.append(node)
                continue
            stack.extend(reversed(node.children))
        return found

    @staticmethod
    def _read_contract(node: Any) -> _ContractRecord:
        name = _text(node.child_by_field_name("name")).strip() or DEFAULT_CONTRACT_NAME

        bases: List[str] = []
        for child in node.children:
            if child.type != "inheritance_specifier":
                continue
            ancestor = child.child_by_field_name("ancestor")
            raw = _text(ancestor) if ancestor is not None else _text(child).split("(", 1)[0]
            base = _compact(raw)
            if base:
                bases.append(base)

        body = node.child_by_field_name("body") or _child_of_type(node, "contract_body")
        members = []
        if body is not None:
            members = [c for c in body.named_children if c.type in FUNCTION_TYPES]
        return _ContractRecord(name=name, bases=bases, members=members)

    @staticmethod
    def _display_name(node: Any) -> str:
        if node.type == "constructor_definition":
            return "constructor"
        if node.type == "fallback_receive_definition":
            for child in node.children:
                if child.type in ("fallback", "receive"):
                    return child.type
            # Pre-0.6 unnamed ``function() { ... }``
            return "fallback"
        name = _text(node.child_by_field_name("name")).strip()
        return name or DEFAULT_FUNCTION_NAME

    @staticmethod
    def _visibility(node: Any) -> str:
        for child in node.children:
            if child.type == "visibility":
                return normalize_visibility(_text(child).strip())
            if child.type in VISIBILITIES:
                return child.type
        return "unknown"

    @staticmethod
    def _body(node: Any) -> Any:
        return node.child_by_field_name("body") or _child_of_type(node, "function_body")

    # ------------------------------------------------------------------
    # Call extraction
    # ------------------------------------------------------------------

    @staticmethod
    def _call_sites(body: Any) -> List[CallSite]:
        """Return every call in *body* whose target could be statically named."""
        sites: List[CallSite] = []
        for node in _iter_preorder(body):
            if node.type != "call_expression":
                continue
            site = _call_site_from(_unwrap(_field_or_first_named(node, "function")))
            if site is not None:
                sites.append(site)
        return sites


def _call_site_from(callee: Any) -> Optional[CallSite]:
    if callee is None:
        return None

    if callee.type == "identifier":
        return CallSite(callee=_text(callee).strip())

    if callee.type == "member_expression":
        prop = _field_or_first_named(callee, "property", last=True)
        receiver = _unwrap(_field_or_first_named(callee, "object"))
        if prop is None or receiver is None:
            return None
        member = _text(prop).strip()
        receiver_name = _text(receiver).strip()
        if not member or not _IDENTIFIER_RE.fullmatch(receiver_name):
            return None
        return CallSite(callee=member, receiver=receiver_name)

    return None


def _load_parser() -> Optional[TSParser]:
    try:
        return get_parser("solidity")
    except Exception as exc:
        logger.warning("Could not load tree-sitter grammar for solidity: %s", exc)
        return None


def analyze_source(code: str) -> ParseResult:
    """Analyze *code* with a fresh analyzer.

    Module-level so it can be shipped to a worker process.
    """
    if not isinstance(code, str):
        logger.warning("Expected source text, got %s", type(code).__name__)
        return ParseResult.empty()
    return SolidityAnalyzer().analyze(code)
