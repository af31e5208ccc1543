"""
Flow Layout MCP Server — branching layout for flow-builder graphs via
Model Context Protocol.

Holds flow graphs (nodes + edges in the editor's JSON shape) in memory and
keeps conditional branches from overlapping as the graph is edited.

Tools:
  1. graph    — lifecycle: create, import_json, load, save, get_json, list, delete
  2. edit     — store mutations: add_node, connect, delete_node, move_node
                (every mutation re-runs the overlap resolver)
  3. layout   — positioning: expand, branch_layout, next_position,
                             safe_offset, branch_width
  4. inspect  — read-only: branches, extent, subtree, collision, overlaps, info
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from flow_layout.branches import (
    calculate_safe_offset,
    get_multi_condition_branches,
    is_conditional,
    is_multi_condition,
)
from flow_layout.constants import STRAIGHT_APPEND_OFFSET
from flow_layout.geometry import detect_collision, find_overlapping_nodes, get_branch_extent
from flow_layout.layout_engine import (
    NodeRole,
    classify_nodes,
    expand_branches_to_prevent_overlap,
    find_multi_condition_parents,
)
from flow_layout.models import (
    FlowEdge,
    FlowNode,
    GraphSnapshot,
    Position,
    TreeLayoutConfig,
    index_nodes,
)
from flow_layout.placement import (
    apply_positions,
    calculate_branch_layout,
    calculate_branch_width,
    calculate_next_node_position,
)
from flow_layout.subtree import get_subtree_nodes
from flow_layout.validation import (
    ValidationError,
    validate_action,
    validate_config_overrides,
    validate_dict,
    validate_file_path,
    validate_handle,
    validate_new_node_id,
    validate_node_id,
    validate_non_empty_string,
    validate_non_negative_number,
    validate_number,
    validate_string,
    _EDIT_ACTIONS,
    _GRAPH_ACTIONS,
    _INSPECT_ACTIONS,
    _LAYOUT_ACTIONS,
)

# ---------------------------------------------------------------------------
# Logging: suppress routine FastMCP INFO messages that editors show
# as warnings (they go to stderr).
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("flow-layout")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "flow-layout",
    instructions=(
        "MCP server that keeps conditional branches of flow-builder graphs\n"
        "from overlapping.\n\n"
        "=== ONLY 4 TOOLS — use the 'action' parameter to pick the operation ===\n\n"
        "1. graph(action, ...) — lifecycle: create, import_json, load, save,\n"
        "   get_json, list, delete.\n"
        "2. edit(action, ...) — mutations: add_node, connect, delete_node,\n"
        "   move_node. Each one re-runs the overlap resolver.\n"
        "3. layout(action, ...) — expand, branch_layout, next_position,\n"
        "   safe_offset, branch_width.\n"
        "4. inspect(action, ...) — read-only: branches, extent, subtree,\n"
        "   collision, overlaps, info.\n\n"
        "=== RULES ===\n"
        "- Graph JSON is {nodes: [{id, type?, position: {x, y}, data}],\n"
        "  edges: [{id?, source, target, sourceHandle?}]}.\n"
        "- A node is conditional when data.type == 'condition' or\n"
        "  type == 'conditional'. Binary branches use handles 'true'/'false'.\n"
        "- N-way conditionals set data.inputs.multipleConditions = true,\n"
        "  returnType 'string' or 'integer', and cases [{returnValue}];\n"
        "  handles are the case values plus 'else'.\n"
        "- The engine only moves nodes; ids, data and edges are never changed.\n"
        "- Config overrides: horizontalSpacing, verticalSpacing, branchOffset,\n"
        "  nodeWidth, minBranchGap.\n"
    ),
)

# In-memory graph registry: name -> GraphSnapshot
# Guarded by _graphs_lock for thread-safety.
_graphs: dict[str, GraphSnapshot] = {}
_graphs_lock = threading.Lock()


# ===================================================================
# RESOURCES
# ===================================================================

@mcp.resource("flowlayout://config/defaults")
def config_defaults() -> str:
    """Return the default layout configuration."""
    return json.dumps(TreeLayoutConfig().to_dict(), indent=2)


@mcp.resource("flowlayout://guide/agent")
def agent_guide() -> str:
    """Short guide for agents editing flow graphs through this server."""
    return """# Flow Layout MCP — Agent Guide

## Typical session
```
1. graph(action='import_json', name='flow', json_content='{"nodes": [...], "edges": [...]}')
2. edit(action='add_node', graph_name='flow', source_id='cond-1',
        source_handle='true', label='Send email')
3. inspect(action='overlaps', graph_name='flow')   # should be []
4. graph(action='get_json', name='flow')
```

## Branch handles
- Binary conditionals: 'true' (left) and 'false' (right).
- N-way conditionals: one handle per distinct case value, in declaration
  order, then 'else' (rightmost). Columns are 220 units apart, centered
  under the conditional node.

## When things look crowded
- layout(action='expand') re-runs the resolver over the whole graph.
- layout(action='branch_layout', conditional_id=..., branch_id=..., apply=True)
  restacks one branch into a single column first.
"""


# ===================================================================
# TOOL 1 — graph
# ===================================================================

@mcp.tool()
def graph(
    action: str,
    name: str = "",
    json_content: str = "",
    file_path: str = "",
) -> str:
    """Graph lifecycle operations.

    Actions:
      create       — New empty graph. Params: name.
      import_json  — Load a graph from a JSON string. Params: name, json_content.
      load         — Load a graph from a .json file. Params: name, file_path.
      save         — Write a graph to a .json file. Params: name, file_path.
      get_json     — Return a graph's JSON. Params: name.
      list         — List graphs held in memory.
      delete       — Forget a graph. Params: name.

    Args:
        action: One of: create, import_json, load, save, get_json, list, delete.
        name: Graph name (key in memory).
        json_content: JSON string for import_json.
        file_path: Path for load/save.

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "graph", _GRAPH_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "list":
        with _graphs_lock:
            listing = [
                {"name": n, "nodes": len(g.nodes), "edges": len(g.edges)}
                for n, g in sorted(_graphs.items())
            ]
        return json.dumps(listing, indent=2)

    try:
        name = validate_non_empty_string(name, "name")
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "create":
        with _graphs_lock:
            if name in _graphs:
                return f"Error: graph '{name}' already exists."
            _graphs[name] = GraphSnapshot()
        return f"Graph '{name}' created."

    if action in ("import_json", "load"):
        try:
            if action == "load":
                path = Path(validate_file_path(file_path, "file_path"))
                try:
                    text = path.read_text(encoding="utf-8")
                except OSError as exc:
                    logger.warning("Could not read graph file %s: %s", path, exc)
                    return f"Error: could not read '{path}': {exc.strerror or exc}."
            else:
                text = validate_string(json_content, "json_content", allow_empty=False)
            snapshot = GraphSnapshot.from_json(text)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        with _graphs_lock:
            _graphs[name] = snapshot
        return (
            f"Imported '{name}' with {len(snapshot.nodes)} node(s) "
            f"and {len(snapshot.edges)} edge(s)."
        )

    snapshot = _graphs.get(name)
    if snapshot is None:
        return f"Error: graph '{name}' not found."

    if action == "get_json":
        return snapshot.to_json()

    if action == "save":
        try:
            path = Path(validate_file_path(file_path, "file_path"))
        except ValidationError as exc:
            return f"Error: {exc.message}"
        try:
            path.write_text(snapshot.to_json(), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write graph file %s: %s", path, exc)
            return f"Error: could not write '{path}': {exc.strerror or exc}."
        return f"Saved '{name}' to {path}."

    # delete
    with _graphs_lock:
        _graphs.pop(name, None)
    return f"Graph '{name}' deleted."


# ===================================================================
# TOOL 2 — edit
# ===================================================================

@mcp.tool()
def edit(
    action: str,
    graph_name: str = "",
    node_id: str = "",
    source_id: str = "",
    source_handle: str = "",
    target_id: str = "",
    node_type: str = "custom",
    label: str = "",
    data: dict[str, Any] | None = None,
    x: float = 0,
    y: float = 0,
    config: dict[str, Any] | None = None,
) -> str:
    """Structural edits. Every edit re-runs the overlap resolver.

    Actions:
      add_node     — Append a new node below source_id. With a conditional
                     source and source_handle, the node lands at the end of
                     that branch. Params: source_id, source_handle?, node_id?,
                     node_type, label, data?.
      connect      — Add an edge source_id -> target_id. A target connected
                     to a conditional branch is moved onto the branch trunk.
                     Params: source_id, target_id, source_handle?.
      delete_node  — Remove node_id and its edges. Params: node_id.
      move_node    — Place node_id at (x, y). Params: node_id, x, y.

    Args:
        action: One of: add_node, connect, delete_node, move_node.
        graph_name: Target graph.
        node_id: Node to delete/move, or id for the new node (optional).
        source_id: Parent / edge source.
        source_handle: Branch handle ('true', 'false', case value, 'else').
        target_id: Edge target for connect.
        node_type: Semantic type of the new node ('condition' makes it
                   a conditional).
        label: Label of the new node.
        data: Extra payload merged into the new node's data.
        x: New x for move_node.
        y: New y for move_node.
        config: Layout config overrides.

    Returns:
        JSON with the affected node and every position the resolver changed.
    """
    try:
        action = validate_action(action, "edit", _EDIT_ACTIONS)
        validate_non_empty_string(graph_name, "graph_name")
        cfg = TreeLayoutConfig.from_overrides(validate_config_overrides(config))
    except ValidationError as exc:
        return f"Error: {exc.message}"

    with _graphs_lock:
        snapshot = _graphs.get(graph_name)
        if snapshot is None:
            return f"Error: graph '{graph_name}' not found."
        known = {n.id for n in snapshot.nodes}
        nodes = list(snapshot.nodes)
        edges = list(snapshot.edges)

        try:
            if action == "add_node":
                source_id = validate_node_id(source_id, "source_id", known)
                handle = validate_handle(source_handle)
                new_id = (
                    validate_new_node_id(node_id, known) if node_id
                    else f"node-{uuid.uuid4().hex[:12]}"
                )
                node_type = validate_non_empty_string(node_type, "node_type")
                extra_data = validate_dict(data, "data") if data is not None else {}
                nodes, edges, subject = _add_node(
                    nodes, edges, source_id, handle, new_id, node_type, label, extra_data, cfg
                )
            elif action == "connect":
                source_id = validate_node_id(source_id, "source_id", known)
                target_id = validate_node_id(target_id, "target_id", known)
                handle = validate_handle(source_handle)
                if source_id == target_id:
                    raise ValidationError("Cannot connect a node to itself.")
                _check_source_free(index_nodes(nodes)[source_id], handle, edges)
                nodes, edges = _connect(nodes, edges, source_id, target_id, handle, cfg)
                subject = target_id
            elif action == "delete_node":
                subject = validate_node_id(node_id, "node_id", known)
                nodes = [n for n in nodes if n.id != subject]
                edges = [e for e in edges if subject not in (e.source, e.target)]
            else:  # move_node
                subject = validate_node_id(node_id, "node_id", known)
                new_x = validate_number(x, "x")
                new_y = validate_number(y, "y")
                nodes = [n.moved(new_x, new_y) if n.id == subject else n for n in nodes]
        except ValidationError as exc:
            return f"Error: {exc.message}"

        laid_out = expand_branches_to_prevent_overlap(nodes, edges, cfg, triggered_by=subject)
        _graphs[graph_name] = GraphSnapshot(nodes=laid_out, edges=edges)

    result: dict[str, Any] = {
        "action": action,
        "node_id": subject,
        "moved": _moved_positions(snapshot.nodes, laid_out),
    }
    placed = index_nodes(laid_out).get(subject)
    if placed is not None:
        result["position"] = placed.position.to_dict()
    return json.dumps(result, indent=2)


def _add_node(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    source_id: str,
    handle: str | None,
    new_id: str,
    node_type: str,
    label: str,
    extra_data: dict[str, Any],
    cfg: TreeLayoutConfig,
) -> tuple[list[FlowNode], list[FlowEdge], str]:
    """Append a node below *source_id*, on its branch trunk when it has one."""
    source = index_nodes(nodes)[source_id]
    branching = is_conditional(source) and handle is not None

    position = None
    if branching:
        position = calculate_next_node_position(source_id, handle, nodes, edges, cfg)
    if position is None:
        # Straight-line parents keep the column
        position = Position(source.position.x, source.position.y + STRAIGHT_APPEND_OFFSET)

    payload: dict[str, Any] = {"label": label, "type": node_type, "inputs": {}}
    payload.update(extra_data)
    new_node = FlowNode(
        id=new_id,
        position=position,
        type="conditional" if node_type == "condition" else "custom",
        data=payload,
    )
    new_edge = FlowEdge(
        source=source_id,
        target=new_id,
        source_handle=handle if branching else None,
    )
    return [*nodes, new_node], [*edges, new_edge], new_id


def _check_source_free(
    source: FlowNode, handle: str | None, edges: list[FlowEdge]
) -> None:
    """Reject a second edge on a conditional's handle or from a plain node."""
    outgoing = [e for e in edges if e.source == source.id]
    if is_conditional(source):
        if any(e.source_handle == handle for e in outgoing):
            raise ValidationError(
                f"Handle '{handle or 'default'}' of node '{source.id}' is already connected."
            )
    elif any(handle is None or e.source_handle == handle for e in outgoing):
        raise ValidationError(f"Node '{source.id}' already has an outgoing edge.")


def _connect(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
    source_id: str,
    target_id: str,
    handle: str | None,
    cfg: TreeLayoutConfig,
) -> tuple[list[FlowNode], list[FlowEdge]]:
    """Add an edge and snap the target into its branch column."""
    new_edges = [*edges, FlowEdge(source=source_id, target=target_id, source_handle=handle)]
    by_id = index_nodes(nodes)
    source = by_id[source_id]

    if is_conditional(source) and handle is not None:
        pos = calculate_next_node_position(source_id, handle, nodes, new_edges, cfg)
        if pos is not None:
            nodes = [
                n.moved(pos.x, source.position.y + cfg.vertical_spacing)
                if n.id == target_id else n
                for n in nodes
            ]
        return nodes, new_edges

    ancestry = _branch_ancestry(source_id, new_edges, by_id)
    if ancestry is not None:
        cond_id, branch_id = ancestry
        positions = calculate_branch_layout(cond_id, branch_id, nodes, new_edges, cfg)
        nodes = apply_positions(nodes, positions)
    return nodes, new_edges


def _branch_ancestry(
    node_id: str,
    edges: list[FlowEdge],
    by_id: dict[str, FlowNode],
) -> tuple[str, str] | None:
    """Nearest (conditional id, branch handle) above *node_id*, if any."""
    incoming: dict[str, list[FlowEdge]] = {}
    for e in edges:
        incoming.setdefault(e.target, []).append(e)

    visited: set[str] = set()
    current = node_id
    while current not in visited:
        visited.add(current)
        parents = incoming.get(current, [])
        if not parents:
            return None
        edge = parents[0]
        parent = by_id.get(edge.source)
        if parent is None:
            return None
        if edge.source_handle is not None and is_conditional(parent):
            return parent.id, edge.source_handle
        current = parent.id
    return None


def _moved_positions(
    before: list[FlowNode], after: list[FlowNode]
) -> dict[str, dict[str, float]]:
    old = index_nodes(before)
    return {
        n.id: n.position.to_dict()
        for n in after
        if n.id in old and old[n.id].position != n.position
    }


# ===================================================================
# TOOL 3 — layout
# ===================================================================

@mcp.tool()
def layout(
    action: str,
    graph_name: str = "",
    conditional_id: str = "",
    branch_id: str = "",
    apply: bool = False,
    config: dict[str, Any] | None = None,
) -> str:
    """Layout computations over a stored graph.

    Actions:
      expand         — Run the overlap resolver and commit the result.
      branch_layout  — Restack one branch into a single column under its
                       trunk. Params: conditional_id, branch_id, apply
                       (commit and re-run the resolver when true).
      next_position  — Where a node appended to a branch would go.
                       Params: conditional_id, branch_id.
      safe_offset    — Trunk distance from the conditional's center.
                       Params: conditional_id, branch_id.
      branch_width   — Horizontal width of a branch.
                       Params: conditional_id, branch_id.

    Args:
        action: One of the actions above.
        graph_name: Target graph.
        conditional_id: Conditional node id.
        branch_id: Branch handle.
        apply: Commit branch_layout positions.
        config: Layout config overrides.

    Returns:
        JSON results.
    """
    try:
        action = validate_action(action, "layout", _LAYOUT_ACTIONS)
        validate_non_empty_string(graph_name, "graph_name")
        cfg = TreeLayoutConfig.from_overrides(validate_config_overrides(config))
    except ValidationError as exc:
        return f"Error: {exc.message}"
    if action == "expand":
        with _graphs_lock:
            snapshot = _graphs.get(graph_name)
            if snapshot is None:
                return f"Error: graph '{graph_name}' not found."
            laid_out = expand_branches_to_prevent_overlap(snapshot.nodes, snapshot.edges, cfg)
            _graphs[graph_name] = GraphSnapshot(nodes=laid_out, edges=snapshot.edges)
        moved = _moved_positions(snapshot.nodes, laid_out)
        return json.dumps({"moved_count": len(moved), "moved": moved}, indent=2)

    with _graphs_lock:
        snapshot = _graphs.get(graph_name)
        if snapshot is None:
            return f"Error: graph '{graph_name}' not found."
        nodes, edges = snapshot.nodes, snapshot.edges
        try:
            conditional_id = validate_node_id(
                conditional_id, "conditional_id", {n.id for n in nodes}
            )
            branch_id = validate_non_empty_string(branch_id, "branch_id")
        except ValidationError as exc:
            return f"Error: {exc.message}"

        if action == "branch_layout":
            positions = calculate_branch_layout(conditional_id, branch_id, nodes, edges, cfg)
            if apply and positions:
                restacked = apply_positions(nodes, positions)
                laid_out = expand_branches_to_prevent_overlap(
                    restacked, edges, cfg, triggered_by=conditional_id
                )
                _graphs[graph_name] = GraphSnapshot(nodes=laid_out, edges=edges)
            return json.dumps(
                {nid: pos.to_dict() for nid, pos in positions.items()}, indent=2
            )

    if action == "next_position":
        pos = calculate_next_node_position(conditional_id, branch_id, nodes, edges, cfg)
        return json.dumps(pos.to_dict() if pos is not None else None)

    if action == "safe_offset":
        return json.dumps(
            {"offset": calculate_safe_offset(conditional_id, branch_id, nodes, edges, cfg)}
        )

    # branch_width
    return json.dumps(
        {"width": calculate_branch_width(conditional_id, branch_id, nodes, edges, cfg)}
    )


# ===================================================================
# TOOL 4 — inspect
# ===================================================================

@mcp.tool()
def inspect(
    action: str,
    graph_name: str = "",
    conditional_id: str = "",
    branch_id: str = "",
    node_id: str = "",
    x: float = 0,
    y: float = 0,
    exclude_id: str = "",
    margin: float = 0,
    config: dict[str, Any] | None = None,
) -> str:
    """Read-only inspection of stored graphs.

    Actions:
      branches   — Branch descriptors of a conditional. Params: conditional_id.
      extent     — Horizontal extent of a branch (null when empty).
                   Params: conditional_id, branch_id.
      subtree    — Ids reachable from a node. Params: node_id.
      collision  — Same-row collision test for a footprint at (x, y).
                   Params: x, y, exclude_id?.
      overlaps   — Same-row, unrelated node pairs closer than margin.
                   Params: margin.
      info       — Node/edge/conditional counts and protected nodes.

    Args:
        action: One of the actions above.
        graph_name: Target graph.
        conditional_id: Conditional node id.
        branch_id: Branch handle.
        node_id: Subtree root.
        x: Footprint x for collision.
        y: Footprint y for collision.
        exclude_id: Node ignored by the collision test.
        margin: Minimum gap for overlap checks.
        config: Layout config overrides.

    Returns:
        JSON data.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)
        validate_non_empty_string(graph_name, "graph_name")
        cfg = TreeLayoutConfig.from_overrides(validate_config_overrides(config))
    except ValidationError as exc:
        return f"Error: {exc.message}"
    snapshot = _graphs.get(graph_name)
    if snapshot is None:
        return f"Error: graph '{graph_name}' not found."
    nodes, edges = snapshot.nodes, snapshot.edges
    known = {n.id for n in nodes}

    try:
        if action == "branches":
            conditional_id = validate_node_id(conditional_id, "conditional_id", known)
            node = index_nodes(nodes)[conditional_id]
            return json.dumps({
                "conditional": is_conditional(node),
                "multi_condition": is_multi_condition(node),
                "branches": [
                    {"id": b.id, "label": b.label, "index": b.index}
                    for b in get_multi_condition_branches(node)
                ],
            }, indent=2)

        if action == "extent":
            conditional_id = validate_node_id(conditional_id, "conditional_id", known)
            branch_id = validate_non_empty_string(branch_id, "branch_id")
            ext = get_branch_extent(conditional_id, branch_id, nodes, edges, cfg)
            return json.dumps(ext.to_dict() if ext is not None else None)

        if action == "subtree":
            node_id = validate_node_id(node_id, "node_id", known)
            return json.dumps([n.id for n in get_subtree_nodes(node_id, edges, nodes)])

        if action == "collision":
            pos = Position(validate_number(x, "x"), validate_number(y, "y"))
            result = detect_collision(pos, cfg.node_width, nodes, exclude_id or None, cfg)
            return json.dumps(result.to_dict(), indent=2)

        if action == "overlaps":
            margin = validate_non_negative_number(margin, "margin")
            pairs = find_overlapping_nodes(nodes, edges, cfg, margin)
            return json.dumps([list(p) for p in pairs])
    except ValidationError as exc:
        return f"Error: {exc.message}"

    # info
    parents = find_multi_condition_parents(nodes)
    roles = classify_nodes(nodes, edges, parents)
    return json.dumps({
        "nodes": len(nodes),
        "edges": len(edges),
        "conditionals": sum(1 for n in nodes if is_conditional(n)),
        "multi_conditionals": sorted(parents),
        "protected": sorted(i for i, r in roles.items() if r is NodeRole.PROTECTED),
        "config": cfg.to_dict(),
    }, indent=2)


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
