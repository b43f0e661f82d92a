"""Call-target resolution over contract inheritance.

The analyzer reduces every call expression in a function body to a
:class:`CallSite` (callee name plus an optional identifier receiver).  This
module turns call sites into deduplicated :class:`~solgraph_cli.models.ParseEdge`
objects using lexical contract scope, ``this``/own-name self calls, ``super``
calls into direct bases, and explicit ``OtherContract.fn()`` calls.

Resolution over-approximates: a contract's table holds
its own functions *and* every inherited function with the same name, so an
override and the base declaration both remain call targets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .models import ParseEdge, ParseFunction, edge_id

logger = logging.getLogger(__name__)

# Names that look like calls syntactically but never produce graph edges.
CALL_BLOCKLIST = frozenset({
    "require", "assert", "revert", "emit",
    "if", "for", "while", "return",
    "new", "delete", "mapping",
    "address", "uint", "int", "bytes", "string", "bool",
    "keccak256", "sha256", "ripemd160", "ecrecover",
})

TargetTable = Dict[str, List[str]]


@dataclass(frozen=True)
class CallSite:
    """A call expression reduced to what resolution needs.

    ``receiver`` is ``None`` for a bare ``foo()`` call and the receiver
    identifier for ``recv.foo()``.
    """

    callee: str
    receiver: Optional[str] = None


def _merge_into(target: TargetTable, source: TargetTable) -> None:
    for name, ids in source.items():
        target[name] = target.get(name, []) + list(ids)


class InheritanceResolver:
    """Per-pass, memoised name -> ids tables including inherited functions."""

    def __init__(
        self,
        own_tables: Dict[str, TargetTable],
        bases: Dict[str, List[str]],
    ) -> None:
        self._own = own_tables
        self._bases = bases
        self._cache: Dict[str, TargetTable] = {}

    def is_known_contract(self, name: str) -> bool:
        return name in self._own

    def bases_of(self, name: str) -> List[str]:
        return list(self._bases.get(name, []))

    def resolve(self, contract: str) -> TargetTable:
        """Return the resolved table for *contract*.

        Explicit depth-first walk over the inheritance graph.  A base that
        is still being resolved further up the walk (an inheritance cycle)
        contributes an empty table; every finished table is cached for the
        rest of the pass.
        """
        cached = self._cache.get(contract)
        if cached is not None:
            return cached

        in_progress: Set[str] = {contract}
        frames: List[List] = [[contract, 0]]

        while frames:
            frame = frames[-1]
            name, index = frame[0], frame[1]
            bases = self._bases.get(name, [])

            if index < len(bases):
                frame[1] = index + 1
                base = bases[index]
                if base in self._cache or base in in_progress:
                    continue
                in_progress.add(base)
                frames.append([base, 0])
                continue

            combined: TargetTable = {}
            _merge_into(combined, self._own.get(name, {}))
            for base in bases:
                _merge_into(combined, self._cache.get(base, {}))
            self._cache[name] = combined
            in_progress.discard(name)
            frames.pop()

        return self._cache[contract]


class CallResolver:
    """Resolve call sites to target function identities."""

    def __init__(self, inheritance: InheritanceResolver) -> None:
        self.inheritance = inheritance

    def candidate_tables(self, contract: str, site: CallSite) -> List[TargetTable]:
        receiver = site.receiver
        if receiver is None:
            return [self.inheritance.resolve(contract)]
        if receiver == "this" or receiver == contract:
            return [self.inheritance.resolve(contract)]
        if receiver == "super":
            # One table per direct base; all of them, even when a later base
            # overrides the function.
            return [self.inheritance.resolve(base) for base in self.inheritance.bases_of(contract)]
        if self.inheritance.is_known_contract(receiver):
            return [self.inheritance.resolve(receiver)]
        # Receiver of unknown static type.
        return []

    def targets(self, contract: str, site: CallSite) -> List[str]:
        if not site.callee or site.callee in CALL_BLOCKLIST:
            return []
        out: List[str] = []
        for table in self.candidate_tables(contract, site):
            out.extend(table.get(site.callee, []))
        return out

    def resolve_edges(
        self,
        calls: Iterable[Tuple[ParseFunction, Sequence[CallSite]]],
    ) -> List[ParseEdge]:
        edges: List[ParseEdge] = []
        seen: Set[str] = set()
        for fn, sites in calls:
            for site in sites:
                for target in self.targets(fn.contract_name, site):
                    key = edge_id(fn.id, target)
                    if key in seen:
                        continue
                    seen.add(key)
                    edges.append(ParseEdge(source=fn.id, target=target))
        logger.debug("Resolved %d call edges", len(edges))
        return edges
