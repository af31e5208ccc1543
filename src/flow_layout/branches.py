"""
Node catalog and branch descriptor resolution.

Binary conditionals have a ``true`` and a ``false`` branch. N-way
conditionals (multiple conditions returning a string or integer) have one
branch per distinct case value followed by a synthetic ``else`` branch,
laid out symmetrically under the node at a fixed per-branch spacing.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from flow_layout.constants import (
    CONDITION_DATA_TYPE,
    CONDITIONAL_NODE_TYPE,
    ELSE_BRANCH_ID,
    MULTI_BRANCH_SPACING,
    MULTI_CONDITION_RETURN_TYPES,
)
from flow_layout.geometry import get_branch_extent
from flow_layout.models import (
    BranchDescriptor,
    FlowEdge,
    FlowNode,
    TreeLayoutConfig,
    index_nodes,
)

logger = logging.getLogger("flow-layout")

_BINARY_BRANCHES = (
    BranchDescriptor(id="true", label="TRUE", index=0),
    BranchDescriptor(id="false", label="FALSE", index=1),
)


# ---------------------------------------------------------------------------
# Catalog predicates
# ---------------------------------------------------------------------------

def is_conditional(node: FlowNode) -> bool:
    """Whether *node* branches into named outputs."""
    data_type = node.data.get("type") if isinstance(node.data, dict) else None
    return data_type == CONDITION_DATA_TYPE or node.type == CONDITIONAL_NODE_TYPE


def is_multi_condition(node: FlowNode) -> bool:
    """Whether *node* is an N-way conditional with explicit case values."""
    if not is_conditional(node):
        return False
    inputs = node.inputs
    return (
        inputs.get("multipleConditions") is True
        and inputs.get("returnType") in MULTI_CONDITION_RETURN_TYPES
    )


def _parse_cases(raw: Any) -> list[Any]:
    """Decode the case list; malformed input yields no cases."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.debug("Unparseable case list %r, treating as empty", raw[:80])
            return []
    if not isinstance(raw, list):
        return []
    return raw


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------

def get_multi_condition_branches(node: FlowNode) -> list[BranchDescriptor]:
    """Enumerate the branches of a conditional node, left to right.

    Never raises: a broken case configuration leaves only ``else``.
    """
    if not is_multi_condition(node):
        return list(_BINARY_BRANCHES)

    seen: list[str] = []
    for case in _parse_cases(node.inputs.get("cases")):
        if not isinstance(case, dict) or case.get("returnValue") is None:
            continue
        value = case["returnValue"]
        # Normalize so integer cases match their edge handles
        branch_id = value if isinstance(value, str) else json.dumps(value)
        # The fallback branch is always the synthetic last one
        if branch_id != ELSE_BRANCH_ID and branch_id not in seen:
            seen.append(branch_id)

    branches = [
        BranchDescriptor(id=value, label=value.upper(), index=i)
        for i, value in enumerate(seen)
    ]
    branches.append(BranchDescriptor(id=ELSE_BRANCH_ID, label="ELSE", index=len(branches)))
    return branches


def find_branch_index(node: FlowNode, branch_id: str) -> int:
    """Index of *branch_id* among the node's branches, or -1."""
    for b in get_multi_condition_branches(node):
        if b.id == branch_id:
            return b.index
    return -1


def multi_branch_offset(index: int, count: int) -> float:
    """Signed trunk offset of branch *index* of *count* from the node center."""
    total_width = (count - 1) * MULTI_BRANCH_SPACING
    return -total_width / 2 + index * MULTI_BRANCH_SPACING


def bracket_bounds(
    node: FlowNode, config: Optional[TreeLayoutConfig] = None
) -> tuple[float, float]:
    """Leftmost and rightmost x covered by an N-way node's branch bracket."""
    cfg = config or TreeLayoutConfig()
    count = len(get_multi_condition_branches(node))
    total_width = (count - 1) * MULTI_BRANCH_SPACING
    center = node.position.x + cfg.half_width
    return (
        center - total_width / 2 - cfg.half_width,
        center + total_width / 2 + cfg.half_width,
    )


# ---------------------------------------------------------------------------
# Per-branch offsets
# ---------------------------------------------------------------------------

def calculate_safe_offset(
    conditional_id: str,
    branch_id: str,
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    config: Optional[TreeLayoutConfig] = None,
) -> float:
    """Lateral distance of a branch trunk from its conditional node's center.

    N-way nodes use the fixed symmetric spacing. For binary nodes the trunk
    must clear the opposite branch's extent by ``min_branch_gap``, and is
    never closer than ``branch_offset``.
    """
    cfg = config or TreeLayoutConfig()
    node = index_nodes(nodes).get(conditional_id)
    if node is None:
        logger.warning("Unknown conditional node '%s'", conditional_id)
        return cfg.branch_offset

    if is_multi_condition(node):
        branches = get_multi_condition_branches(node)
        index = find_branch_index(node, branch_id)
        if index == -1:
            logger.warning(
                "Branch '%s' not found on conditional node '%s'", branch_id, conditional_id
            )
            return cfg.branch_offset
        return abs(multi_branch_offset(index, len(branches)))

    center = node.position.x + cfg.half_width
    opposite = "false" if branch_id == "true" else "true"
    extent = get_branch_extent(conditional_id, opposite, nodes, edges, cfg)
    if extent is None:
        return cfg.branch_offset

    if branch_id == "true":
        distance = extent.min_x - center
    else:
        distance = center - extent.max_x
    return max(cfg.branch_offset, -distance + cfg.min_branch_gap)


def calculate_branch_x_position(
    node: FlowNode,
    branch_id: str,
    nodes: Optional[list[FlowNode]] = None,
    edges: Optional[list[FlowEdge]] = None,
    config: Optional[TreeLayoutConfig] = None,
) -> float:
    """Left x for a node whose center sits on the branch's trunk line.

    An unknown branch falls back to centering under *node*.
    """
    cfg = config or TreeLayoutConfig()
    center = node.position.x + cfg.half_width

    branches = get_multi_condition_branches(node)
    index = find_branch_index(node, branch_id)
    if index == -1:
        logger.warning("Branch '%s' not found on conditional node '%s'", branch_id, node.id)
        return center - cfg.half_width

    if is_multi_condition(node):
        return center + multi_branch_offset(index, len(branches)) - cfg.half_width

    all_nodes = nodes if nodes is not None else [node]
    if not any(n.id == node.id for n in all_nodes):
        all_nodes = [node, *all_nodes]
    offset = calculate_safe_offset(node.id, branch_id, all_nodes, edges or [], cfg)
    sign = -1 if branch_id == "true" else 1
    return center + sign * offset - cfg.half_width
