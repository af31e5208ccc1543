"""
Per-branch placement: trunk columns and vertical stacking inside a branch.
"""

from __future__ import annotations

import logging
from typing import Optional

from flow_layout.branches import calculate_branch_x_position
from flow_layout.models import (
    FlowEdge,
    FlowNode,
    TreeLayoutConfig,
    TreePosition,
    index_nodes,
)
from flow_layout.subtree import get_branch_nodes, sort_nodes_by_depth

logger = logging.getLogger("flow-layout")


def calculate_branch_width(
    conditional_id: str,
    branch_id: str,
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    config: Optional[TreeLayoutConfig] = None,
) -> float:
    """Horizontal width a branch occupies, never less than half a node plus 50."""
    cfg = config or TreeLayoutConfig()
    minimum = cfg.half_width + 50
    branch_nodes = get_branch_nodes(conditional_id, branch_id, edges, nodes)
    if not branch_nodes:
        return minimum
    xs = [n.position.x for n in branch_nodes]
    return max(max(xs) + cfg.node_width - min(xs), minimum)


def calculate_next_node_position(
    conditional_id: str,
    branch_id: str,
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    config: Optional[TreeLayoutConfig] = None,
) -> Optional[TreePosition]:
    """Where a node appended to the end of a branch should go.

    One ``vertical_spacing`` below the deepest node already in the branch,
    or one below the conditional node when the branch is empty. Returns
    None when *conditional_id* is not in *nodes*.
    """
    cfg = config or TreeLayoutConfig()
    node = index_nodes(nodes).get(conditional_id)
    if node is None:
        logger.warning("Unknown conditional node '%s'", conditional_id)
        return None

    branch_x = calculate_branch_x_position(node, branch_id, nodes, edges, cfg)
    branch_nodes = get_branch_nodes(conditional_id, branch_id, edges, nodes)
    if not branch_nodes:
        return TreePosition(branch_x, node.position.y + cfg.vertical_spacing)

    deepest = max(n.position.y for n in branch_nodes)
    return TreePosition(branch_x, deepest + cfg.vertical_spacing)


def calculate_branch_layout(
    conditional_id: str,
    branch_id: str,
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    config: Optional[TreeLayoutConfig] = None,
) -> dict[str, TreePosition]:
    """Restack every node of a branch in a single column under its trunk.

    Nodes are ordered by depth and spaced ``vertical_spacing`` apart,
    starting one row below the conditional node.

    Returns:
        Mapping of node id -> new position (empty for an unknown
        conditional or an empty branch).
    """
    cfg = config or TreeLayoutConfig()
    node = index_nodes(nodes).get(conditional_id)
    if node is None:
        logger.warning("Unknown conditional node '%s'", conditional_id)
        return {}

    branch_nodes = get_branch_nodes(conditional_id, branch_id, edges, nodes)
    if not branch_nodes:
        return {}

    branch_x = calculate_branch_x_position(node, branch_id, nodes, edges, cfg)
    start_y = node.position.y + cfg.vertical_spacing
    return {
        n.id: TreePosition(branch_x, start_y + i * cfg.vertical_spacing)
        for i, n in enumerate(sort_nodes_by_depth(branch_nodes, edges))
    }


def apply_positions(
    nodes: list[FlowNode], positions: dict[str, TreePosition]
) -> list[FlowNode]:
    """Commit computed positions; other nodes are returned unchanged."""
    return [
        n.moved(positions[n.id].x, positions[n.id].y) if n.id in positions else n
        for n in nodes
    ]
