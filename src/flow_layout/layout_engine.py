"""
Iterative overlap resolver for branching flow graphs.

Run once per structural edit (node inserted into a branch, node deleted,
edge rewired). Each pass:

1. Splits overlapping ``true``/``false`` branches of binary conditionals
   apart symmetrically, keeping the conditional node centered.
2. Pushes apart unrelated same-row neighbours, moving the right-hand
   node's whole subtree.

Passes repeat until nothing moves or the iteration cap is hit. Afterwards
foreign subtrees are pushed out of every N-way conditional's bracket; if
that moves anything, the passes resume until the iteration cap.

Direct branch children of N-way conditionals (and their subtrees) are
protected: they keep their index-based columns and are never nudged by the
generic neighbour pass.

The engine holds no state between calls. Input lists are never mutated;
untouched nodes come back as the same objects.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Optional

from flow_layout.branches import bracket_bounds, is_conditional, is_multi_condition
from flow_layout.constants import (
    BRACKET_PADDING,
    BRACKET_PUSH_MARGIN,
    BRACKET_SAME_LEVEL,
    BRACKET_ZONE_DEPTH,
    MAX_ITERATIONS,
    SETTLE_EPSILON,
)
from flow_layout.geometry import extent_of, row_key
from flow_layout.models import (
    FlowEdge,
    FlowNode,
    GraphSnapshot,
    TreeLayoutConfig,
    children_index,
    index_nodes,
)
from flow_layout.subtree import collect_reachable, get_exclusive_branch_ids, translate_nodes

logger = logging.getLogger("flow-layout")


# ---------------------------------------------------------------------------
# Protected / generic classification
# ---------------------------------------------------------------------------

class NodeRole(Enum):
    PROTECTED = "protected"  # Inside an N-way branch; fixed column
    GENERIC = "generic"


def find_multi_condition_parents(nodes: list[FlowNode]) -> set[str]:
    """Ids of all N-way conditional nodes."""
    return {n.id for n in nodes if is_multi_condition(n)}


def classify_nodes(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    multi_condition_parents: set[str],
) -> dict[str, NodeRole]:
    """Tag every node as protected (inside an N-way branch) or generic."""
    roots = [e.target for e in edges if e.source in multi_condition_parents]
    protected = set(collect_reachable(roots, edges)) if roots else set()
    return {
        n.id: NodeRole.PROTECTED if n.id in protected else NodeRole.GENERIC
        for n in nodes
    }


def _changed(before: list[FlowNode], after: list[FlowNode]) -> bool:
    return any(a is not b for a, b in zip(before, after))


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

def resolve_binary_branch_overlap(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    multi_condition_parents: Optional[set[str]] = None,
    config: Optional[TreeLayoutConfig] = None,
) -> list[FlowNode]:
    """Split every binary conditional whose true/false extents collide."""
    cfg = config or TreeLayoutConfig()
    skip = multi_condition_parents or set()
    adj = children_index(edges)
    updated = list(nodes)

    for cond_id in [n.id for n in nodes if is_conditional(n) and n.id not in skip]:
        # A shared join node stays put; it cannot be on both sides
        true_ids = get_exclusive_branch_ids(cond_id, "true", "false", edges, adj)
        false_ids = get_exclusive_branch_ids(cond_id, "false", "true", edges, adj)
        by_id = index_nodes(updated)
        true_extent = extent_of([by_id[i] for i in true_ids if i in by_id], cfg.node_width)
        false_extent = extent_of([by_id[i] for i in false_ids if i in by_id], cfg.node_width)
        if true_extent is None or false_extent is None:
            continue

        overlap = cfg.min_branch_gap - true_extent.gap_to(false_extent)
        if overlap <= 0:
            continue

        shift = math.ceil(overlap / 2) + SETTLE_EPSILON
        logger.debug("Splitting branches of '%s' by %s each way", cond_id, shift)
        updated = translate_nodes(true_ids, -shift, updated)
        updated = translate_nodes(false_ids, shift, updated)

    return updated


def resolve_neighbor_collisions(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    multi_condition_parents: Optional[set[str]] = None,
    config: Optional[TreeLayoutConfig] = None,
) -> list[FlowNode]:
    """Push apart unrelated subtrees that crowd each other on the same row.

    Rows are ``floor(y / 100) * 100`` buckets of generic nodes. Within a
    row, each adjacent pair closer than ``min_branch_gap`` moves the right
    node's subtree right by the shortfall plus a small epsilon.
    """
    cfg = config or TreeLayoutConfig()
    roles = classify_nodes(nodes, edges, multi_condition_parents or set())
    adj = children_index(edges)

    rows: dict[float, list[str]] = {}
    for n in nodes:
        if roles[n.id] is NodeRole.GENERIC:
            rows.setdefault(row_key(n.position.y), []).append(n.id)

    updated = list(nodes)
    by_id = index_nodes(updated)
    for _, row in sorted(rows.items()):
        if len(row) < 2:
            continue
        ordered = sorted(row, key=lambda i: by_id[i].position.x)
        for left_id, right_id in zip(ordered, ordered[1:]):
            left, right = by_id[left_id], by_id[right_id]
            gap = right.position.x - (left.position.x + cfg.node_width)
            if gap >= cfg.min_branch_gap:
                continue
            subtree = collect_reachable([right_id], edges, adj)
            if left_id in subtree:
                # Moving the right node would drag the left one along
                continue
            updated = translate_nodes(
                set(subtree), cfg.min_branch_gap - gap + SETTLE_EPSILON, updated
            )
            by_id = index_nodes(updated)

    return updated


def resolve_multi_condition_overlap(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    multi_condition_parents: set[str],
    config: Optional[TreeLayoutConfig] = None,
) -> list[FlowNode]:
    """Push foreign subtrees out of every N-way conditional's bracket.

    A subtree is foreign when it is not one of the N-way node's branches.
    It is checked when its root sits on the same level as the N-way node or
    within the bracket zone below it, and is pushed away from the bracket's
    center until it clears ``[leftmost - pad, rightmost + pad]``.
    """
    cfg = config or TreeLayoutConfig()
    adj = children_index(edges)
    pad = cfg.min_branch_gap + BRACKET_PADDING
    updated = list(nodes)

    for mc_id in [n.id for n in nodes if n.id in multi_condition_parents]:
        by_id = index_nodes(updated)
        mc = by_id.get(mc_id)
        if mc is None:
            continue
        leftmost, rightmost = bracket_bounds(mc, cfg)
        center = mc.position.x + cfg.half_width

        branch_roots = [e.target for e in adj.get(mc_id, [])]
        protected = {mc_id, *collect_reachable(branch_roots, edges, adj)}

        for cand_id in [n.id for n in updated if n.id not in protected]:
            node = by_id[cand_id]
            dy = node.position.y - mc.position.y
            same_level = abs(dy) < BRACKET_SAME_LEVEL
            in_zone = 0 < dy < BRACKET_ZONE_DEPTH
            if not same_level and not in_zone:
                continue

            subtree = collect_reachable([cand_id], edges, adj)
            if mc_id in subtree:
                continue
            ext = extent_of([by_id[i] for i in subtree if i in by_id], cfg.node_width)
            if ext is None:
                continue

            if ext.max_x > leftmost - pad and ext.min_x < center:
                shift = (leftmost - pad) - ext.max_x
                if shift < 0:
                    updated = translate_nodes(set(subtree), shift - BRACKET_PUSH_MARGIN, updated)
                    by_id = index_nodes(updated)
                    ext = extent_of([by_id[i] for i in subtree if i in by_id], cfg.node_width)

            if ext.min_x < rightmost + pad and ext.max_x > center:
                shift = (rightmost + pad) - ext.min_x
                if shift > 0:
                    updated = translate_nodes(set(subtree), shift + BRACKET_PUSH_MARGIN, updated)
                    by_id = index_nodes(updated)

    return updated


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _settle(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    multi_condition_parents: set[str],
    cfg: TreeLayoutConfig,
    iterations: int,
    max_iterations: int,
) -> tuple[list[FlowNode], int]:
    """Run binary + neighbour passes to a fixed point or the cap."""
    changed = True
    while changed and iterations < max_iterations:
        iterations += 1
        before = nodes
        nodes = resolve_binary_branch_overlap(nodes, edges, multi_condition_parents, cfg)
        nodes = resolve_neighbor_collisions(nodes, edges, multi_condition_parents, cfg)
        changed = _changed(before, nodes)
    if changed:
        logger.debug("Iteration cap (%d) reached; keeping best-effort layout", max_iterations)
    return nodes, iterations


def expand_branches_to_prevent_overlap(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    config: Optional[TreeLayoutConfig] = None,
    *,
    triggered_by: Optional[str] = None,
    max_iterations: int = MAX_ITERATIONS,
) -> list[FlowNode]:
    """Reposition subtrees so no branches overlap.

    Args:
        nodes: Complete node collection of the graph.
        edges: Complete edge collection of the graph.
        config: Layout tunables (defaults when omitted).
        triggered_by: Id of the node whose edit triggered the run (logged only).
        max_iterations: Pass cap guaranteeing termination.

    Returns:
        A new node list. Only positions differ from the input.
    """
    cfg = config or TreeLayoutConfig()
    parents = find_multi_condition_parents(nodes)
    updated = list(nodes)
    iterations = 0

    while True:
        updated, iterations = _settle(updated, edges, parents, cfg, iterations, max_iterations)
        if not parents:
            break
        before = updated
        updated = resolve_multi_condition_overlap(updated, edges, parents, cfg)
        if not _changed(before, updated) or iterations >= max_iterations:
            break

    logger.debug(
        "Layout settled after %d pass(es)%s",
        iterations,
        f" (triggered by '{triggered_by}')" if triggered_by else "",
    )
    return updated


def layout_snapshot(
    snapshot: GraphSnapshot,
    config: Optional[TreeLayoutConfig] = None,
    *,
    triggered_by: Optional[str] = None,
) -> GraphSnapshot:
    """Lay out a whole snapshot; edges are carried over untouched."""
    nodes = expand_branches_to_prevent_overlap(
        snapshot.nodes, snapshot.edges, config, triggered_by=triggered_by
    )
    return GraphSnapshot(nodes=nodes, edges=snapshot.edges)
