"""
Geometry primitives: footprints, branch extents and same-row collisions.

Every node is treated as ``node_width`` wide; heights never matter because
branches fan out row by row and only same-row siblings can collide.
"""

from __future__ import annotations

import math
from typing import Optional

from flow_layout.constants import ROW_BUCKET, SAME_ROW_TOLERANCE
from flow_layout.models import (
    BranchExtent,
    CollisionResult,
    FlowEdge,
    FlowNode,
    Position,
    TreeLayoutConfig,
    children_index,
)
from flow_layout.subtree import collect_reachable, get_branch_nodes


def extent_of(nodes: list[FlowNode], node_width: float) -> Optional[BranchExtent]:
    """Union footprint of *nodes*, or None when there are none."""
    if not nodes:
        return None
    xs = [n.position.x for n in nodes]
    return BranchExtent(min_x=min(xs), max_x=max(xs) + node_width)


def row_key(y: float) -> float:
    """Row bucket used by the neighbour pass."""
    return math.floor(y / ROW_BUCKET) * ROW_BUCKET


def detect_collision(
    position: Position,
    width: float,
    nodes: list[FlowNode],
    exclude_id: Optional[str] = None,
    config: Optional[TreeLayoutConfig] = None,
) -> CollisionResult:
    """Test a footprint at *position* against every same-row node.

    Existing footprints are padded by ``min_branch_gap`` on both sides. The
    result carries the node needing the largest lateral shift to clear.
    """
    cfg = config or TreeLayoutConfig()
    buffer = cfg.min_branch_gap
    new_left = position.x
    new_right = position.x + width

    worst: Optional[FlowNode] = None
    worst_shift = 0.0
    for node in nodes:
        if node.id == exclude_id:
            continue
        if abs(node.position.y - position.y) > SAME_ROW_TOLERANCE:
            continue
        existing_left = node.position.x - buffer
        existing_right = node.position.x + width + buffer
        if new_right > existing_left and new_left < existing_right:
            overlap = min(new_right, existing_right) - max(new_left, existing_left)
            shift = overlap + buffer
            if worst is None or shift > worst_shift:
                worst, worst_shift = node, shift

    if worst is None:
        return CollisionResult(has_collision=False)
    return CollisionResult(has_collision=True, colliding_node=worst, required_shift=worst_shift)


def get_branch_extent(
    conditional_id: str,
    branch_id: str,
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    config: Optional[TreeLayoutConfig] = None,
) -> Optional[BranchExtent]:
    """Horizontal extent of one branch; None when the branch is empty."""
    cfg = config or TreeLayoutConfig()
    return extent_of(get_branch_nodes(conditional_id, branch_id, edges, nodes), cfg.node_width)


def find_overlapping_nodes(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    config: Optional[TreeLayoutConfig] = None,
    margin: float = 0,
) -> list[tuple[str, str]]:
    """Find same-row pairs whose footprints are closer than *margin*.

    Pairs where one node is an ancestor of the other are not reported.

    Returns:
        List of (left_id, right_id) pairs, left by x.
    """
    cfg = config or TreeLayoutConfig()
    adj = children_index(edges)
    rows: dict[float, list[FlowNode]] = {}
    for n in nodes:
        rows.setdefault(row_key(n.position.y), []).append(n)

    reach_cache: dict[str, set[str]] = {}

    def reach(node_id: str) -> set[str]:
        if node_id not in reach_cache:
            reach_cache[node_id] = set(collect_reachable([node_id], edges, adj))
        return reach_cache[node_id]

    overlaps: list[tuple[str, str]] = []
    for _, row in sorted(rows.items()):
        row = sorted(row, key=lambda n: n.position.x)
        for i in range(len(row)):
            for j in range(i + 1, len(row)):
                a, b = row[i], row[j]
                gap = b.position.x - (a.position.x + cfg.node_width)
                if gap >= margin:
                    # Sorted by x, so nothing further right can be closer
                    break
                if b.id in reach(a.id) or a.id in reach(b.id):
                    continue
                overlaps.append((a.id, b.id))
    return overlaps
