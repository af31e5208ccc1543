"""
Reachability traversal and bulk translation of subtrees.

``shift_subtree`` is the engine's only mutation primitive: every correction
the resolver makes is a whole-subtree translation along x.
Traversals keep a visited set so cyclic edge sets terminate.
"""

from __future__ import annotations

from typing import Iterable

from flow_layout.models import FlowEdge, FlowNode, children_index, index_nodes


def collect_reachable(
    root_ids: Iterable[str],
    edges: list[FlowEdge],
    children: dict[str, list[FlowEdge]] | None = None,
) -> list[str]:
    """Ids reachable from *root_ids* (roots included), in DFS pre-order."""
    adj = children if children is not None else children_index(edges)
    visited: set[str] = set()
    order: list[str] = []
    stack = list(reversed(list(root_ids)))
    while stack:
        node_id = stack.pop()
        if node_id in visited:
            continue
        visited.add(node_id)
        order.append(node_id)
        for e in reversed(adj.get(node_id, [])):
            if e.target not in visited:
                stack.append(e.target)
    return order


def get_subtree_nodes(
    root_id: str,
    edges: list[FlowEdge],
    nodes: list[FlowNode],
) -> list[FlowNode]:
    """All nodes reachable from *root_id* through any edge, itself included.

    Returned in the order of *nodes*.
    """
    ids = set(collect_reachable([root_id], edges))
    return [n for n in nodes if n.id in ids]


def translate_nodes(
    node_ids: set[str],
    x_offset: float,
    nodes: list[FlowNode],
) -> list[FlowNode]:
    """Return a new list with every node in *node_ids* moved by *x_offset*.

    Nodes outside the set are the same objects as in *nodes*.
    """
    if not x_offset or not node_ids:
        return list(nodes)
    return [
        n.moved(n.position.x + x_offset) if n.id in node_ids else n
        for n in nodes
    ]


def shift_subtree(
    root_id: str,
    x_offset: float,
    nodes: list[FlowNode],
    edges: list[FlowEdge],
) -> list[FlowNode]:
    """Shift the subtree rooted at *root_id* horizontally by *x_offset*.

    y coordinates and all unreachable nodes are left untouched.
    """
    return translate_nodes(set(collect_reachable([root_id], edges)), x_offset, nodes)


def get_branch_roots(
    source_id: str,
    source_handle: str | None,
    edges: list[FlowEdge],
) -> list[str]:
    """Direct children of *source_id* leaving through *source_handle*."""
    roots: list[str] = []
    for e in edges:
        if e.source == source_id and e.source_handle == source_handle and e.target not in roots:
            roots.append(e.target)
    return roots


def get_branch_nodes(
    source_id: str,
    source_handle: str | None,
    edges: list[FlowEdge],
    nodes: list[FlowNode],
) -> list[FlowNode]:
    """All nodes in one branch of *source_id*, in DFS pre-order.

    Edge targets that are not present in *nodes* are skipped.
    """
    by_id = index_nodes(nodes)
    roots = get_branch_roots(source_id, source_handle, edges)
    return [by_id[i] for i in collect_reachable(roots, edges) if i in by_id]


def get_exclusive_branch_ids(
    source_id: str,
    source_handle: str | None,
    sibling_handle: str | None,
    edges: list[FlowEdge],
    children: dict[str, list[FlowEdge]] | None = None,
) -> set[str]:
    """Ids reachable through *source_handle* but not through *sibling_handle*.

    Join nodes where the two branches merge again, and everything below
    them, belong to neither side.
    """
    adj = children if children is not None else children_index(edges)
    own = collect_reachable(get_branch_roots(source_id, source_handle, edges), edges, adj)
    other = set(collect_reachable(get_branch_roots(source_id, sibling_handle, edges), edges, adj))
    return {i for i in own if i not in other}


def sort_nodes_by_depth(
    nodes: list[FlowNode],
    edges: list[FlowEdge],
) -> list[FlowNode]:
    """Order *nodes* topologically by a DFS from their local roots.

    A local root has no incoming edge from another node in *nodes*.
    Nodes only reachable through a cycle are appended in input order.
    """
    by_id = index_nodes(nodes)
    has_parent = {
        e.target for e in edges
        if e.source in by_id and e.target in by_id and e.source != e.target
    }
    roots = [n.id for n in nodes if n.id not in has_parent]
    local_edges = [e for e in edges if e.source in by_id and e.target in by_id]
    order = collect_reachable(roots, local_edges)
    seen = set(order)
    # Pure cycles have no root
    for n in nodes:
        if n.id not in seen:
            for nid in collect_reachable([n.id], local_edges):
                if nid not in seen:
                    seen.add(nid)
                    order.append(nid)
    return [by_id[i] for i in order]
