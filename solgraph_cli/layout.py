"""Anchored force layout for newly discovered graph nodes.

Brand-new nodes are first seeded on a golden-angle spiral (deterministic per
node id), then relaxed by a force simulation in which previously positioned
nodes are pinned: they push and pull on the new nodes but never move.

The simulation follows d3-force semantics (velocity Verlet with alpha
cooling) with these forces:

========== ==============================================================
charge     many-body repulsion, ``strength * alpha / d^2`` per pair
center     shifts the mean position onto the panel's logical center
radial     pulls every node toward a ring of radius ``~ sqrt(n)`` (capped)
collide    minimum separation between node centers
link       springs along call edges with a fixed rest length
========== ==============================================================

Forces are evaluated for all pairs with numpy, so results are not
bit-identical to a Barnes-Hut implementation; only relative properties are
meaningful.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

import numpy as np

from .models import FunctionNode, GraphEdge, MergeResult, Position

logger = logging.getLogger(__name__)

GOLDEN_ANGLE = math.pi * (3 - math.sqrt(5))

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619
_JIGGLE_SEED = 0x5EED


@dataclass(frozen=True)
class LayoutConfig:
    iterations: int = 520
    charge: float = -420.0
    link_distance: float = 160.0
    link_strength: float = 0.9
    collide_radius: float = 150.0
    collide_strength: float = 1.0
    radial_strength: float = 0.05
    base_radius: float = 180.0
    radius_per_sqrt_node: float = 70.0
    max_radius: float = 520.0
    envelope_factor: float = 2.0
    center_x: float = 0.0
    center_y: float = 0.0
    alpha_min: float = 0.001
    alpha_decay_ticks: int = 300
    velocity_decay: float = 0.4

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> "LayoutConfig":
        """Build a config from a ``[layout]`` TOML section, ignoring unknown keys."""
        if not values:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in values.items():
            if key not in known:
                logger.debug("Ignoring unknown layout option '%s'", key)
                continue
            kwargs[key] = int(value) if key in ("iterations", "alpha_decay_ticks") else float(value)
        return cls(**kwargs)

    def target_radius(self, node_count: int) -> float:
        return min(self.max_radius, self.base_radius + math.sqrt(node_count) * self.radius_per_sqrt_node)

    def envelope_radius(self, node_count: int) -> float:
        return self.target_radius(node_count) * self.envelope_factor


# ===================================================================
# Seed positions
# ===================================================================

def hash01(value: str) -> float:
    """32-bit FNV-1a over UTF-16 code units, mapped to ``[0, 1)``."""
    h = _FNV_OFFSET
    raw = value.encode("utf-16-le")
    for i in range(0, len(raw), 2):
        h ^= raw[i] | (raw[i + 1] << 8)
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h / 4294967296


def radial_position(index: int, node_id: str) -> Position:
    t = index * GOLDEN_ANGLE
    jitter = hash01(node_id)
    radius = 90 + math.sqrt(index) * 56 + jitter * 42
    x = math.cos(t) * radius + (jitter - 0.5) * 26
    y = math.sin(t) * radius + (jitter - 0.5) * 26
    return Position(x, y)


# ===================================================================
# Simulation
# ===================================================================

def _antisymmetric_jiggle(rng: np.random.Generator, n: int) -> np.ndarray:
    noise = (rng.random((n, n, 2)) - 0.5) * 1e-6
    return noise - noise.transpose(1, 0, 2)


def _pairwise(points: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """``delta[i, j] = points[j] - points[i]`` with coincident pairs jiggled."""
    delta = points[None, :, :] - points[:, None, :]
    coincident = (delta == 0).all(axis=-1)
    np.fill_diagonal(coincident, False)
    if coincident.any():
        delta = np.where(coincident[..., None], _antisymmetric_jiggle(rng, len(points)), delta)
    return delta


class ForceSimulation:
    """d3-style force simulation over a fixed set of bodies."""

    def __init__(
        self,
        positions: np.ndarray,
        links: Sequence[tuple],
        fixed: np.ndarray,
        config: LayoutConfig,
    ) -> None:
        self.config = config
        self.pos = positions.astype(np.float64, copy=True)
        self.vel = np.zeros_like(self.pos)
        self.fixed = fixed
        self.fixed_pos = self.pos[fixed].copy()
        self.center = np.array([config.center_x, config.center_y], dtype=np.float64)
        self.alpha = 1.0
        self.alpha_decay = 1 - config.alpha_min ** (1 / config.alpha_decay_ticks)
        self.rng = np.random.default_rng(_JIGGLE_SEED)

        n = len(self.pos)
        self.radius = config.target_radius(n)
        self.link_src = np.array([s for s, _ in links], dtype=np.int64)
        self.link_dst = np.array([t for _, t in links], dtype=np.int64)
        count = np.zeros(n, dtype=np.float64)
        np.add.at(count, self.link_src, 1)
        np.add.at(count, self.link_dst, 1)
        if len(links):
            self.link_bias = count[self.link_src] / (count[self.link_src] + count[self.link_dst])
        else:
            self.link_bias = np.zeros(0, dtype=np.float64)

    def run(self, ticks: int) -> np.ndarray:
        for _ in range(ticks):
            self.tick()
        return self.pos

    def tick(self) -> None:
        self.alpha += (0.0 - self.alpha) * self.alpha_decay
        self._charge()
        self._center()
        self._radial()
        self._collide()
        self._link()

        self.vel *= 1 - self.config.velocity_decay
        free = ~self.fixed
        self.pos[free] += self.vel[free]
        self.pos[self.fixed] = self.fixed_pos
        self.vel[self.fixed] = 0.0

    def _charge(self) -> None:
        n = len(self.pos)
        if n < 2:
            return
        delta = _pairwise(self.pos, self.rng)
        dist2 = (delta ** 2).sum(axis=-1)
        dist2 = np.where(dist2 < 1.0, np.sqrt(dist2), dist2)
        np.fill_diagonal(dist2, np.inf)
        weight = self.config.charge * self.alpha / dist2
        self.vel += (delta * weight[..., None]).sum(axis=1)

    def _center(self) -> None:
        if len(self.pos):
            self.pos -= self.pos.mean(axis=0) - self.center

    def _radial(self) -> None:
        d = self.pos - self.center
        d[d == 0] = 1e-6
        r = np.sqrt((d ** 2).sum(axis=-1))
        k = (self.radius - r) * self.config.radial_strength * self.alpha / r
        self.vel += d * k[:, None]

    def _collide(self) -> None:
        n = len(self.pos)
        if n < 2:
            return
        predicted = self.pos + self.vel
        # Pairwise vector from j to i on predicted positions.
        delta = -_pairwise(predicted, self.rng)
        dist2 = (delta ** 2).sum(axis=-1)
        reach = 2 * self.config.collide_radius
        overlap = dist2 < reach * reach
        np.fill_diagonal(overlap, False)
        if not overlap.any():
            return
        dist = np.sqrt(np.where(overlap, dist2, 1.0))
        push = np.where(overlap, (reach - dist) / dist * self.config.collide_strength, 0.0)
        # Equal radii: each side of a pair takes half of the correction.
        self.vel += (delta * (push * 0.5)[..., None]).sum(axis=1)

    def _link(self) -> None:
        if not len(self.link_src):
            return
        src, dst = self.link_src, self.link_dst
        d = (self.pos[dst] + self.vel[dst]) - (self.pos[src] + self.vel[src])
        d[d == 0] = 1e-6
        length = np.sqrt((d ** 2).sum(axis=-1))
        factor = (length - self.config.link_distance) / length * self.alpha * self.config.link_strength
        d = d * factor[:, None]
        np.add.at(self.vel, dst, -d * self.link_bias[:, None])
        np.add.at(self.vel, src, d * (1 - self.link_bias)[:, None])


# ===================================================================
# Public API
# ===================================================================

def apply_force_layout(
    nodes: Sequence[FunctionNode],
    edges: Sequence[GraphEdge],
    fixed_ids: Optional[Set[str]],
    config: Optional[LayoutConfig] = None,
) -> List[FunctionNode]:
    """Return *nodes* with relaxed positions.

    Nodes whose id is in *fixed_ids* keep their exact position.  With
    ``fixed_ids=None`` every node moves.  Moved nodes end up inside
    ``config.envelope_radius(len(nodes))`` of the center.
    """
    config = config or LayoutConfig()
    if not nodes:
        return []

    index = {node.id: i for i, node in enumerate(nodes)}
    positions = np.array([[n.position.x, n.position.y] for n in nodes], dtype=np.float64)
    fixed = np.array([bool(fixed_ids) and n.id in fixed_ids for n in nodes], dtype=bool)
    links = [
        (index[e.source], index[e.target])
        for e in edges
        if e.source in index and e.target in index and e.source != e.target
    ]

    sim = ForceSimulation(positions, links, fixed, config)
    final = sim.run(config.iterations)

    envelope = config.envelope_radius(len(nodes))
    center = sim.center
    out: List[FunctionNode] = []
    for i, node in enumerate(nodes):
        if fixed[i]:
            out.append(node)
            continue
        offset = final[i] - center
        distance = float(np.sqrt((offset ** 2).sum()))
        if distance > envelope:
            offset = offset * (envelope / distance)
        x, y = (center + offset).tolist()
        out.append(replace(node, position=Position(x, y)))

    logger.debug(
        "Layout: %d nodes (%d pinned), %d links, %d ticks",
        len(nodes), int(fixed.sum()), len(links), config.iterations,
    )
    return out


def layout_after_merge(
    previous_ids: Set[str],
    merged: MergeResult,
    config: Optional[LayoutConfig] = None,
) -> List[FunctionNode]:
    """Position the nodes a merge introduced.

    Skips the simulation when nothing is new; lays out the whole graph when
    the panel had no nodes before; otherwise pins every previous node.
    """
    if not merged.nodes:
        return merged.nodes
    if not previous_ids:
        return apply_force_layout(merged.nodes, merged.edges, None, config)
    if all(node.id in previous_ids for node in merged.nodes):
        return merged.nodes

    layouted = apply_force_layout(merged.nodes, merged.edges, previous_ids, config)
    by_id = {node.id: node.position for node in layouted}
    return [
        node if node.id in previous_ids else replace(node, position=by_id.get(node.id, node.position))
        for node in merged.nodes
    ]
