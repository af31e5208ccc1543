"""Tests for reachability traversal and subtree translation."""

from conftest import edge, make_node

from flow_layout.subtree import (
    get_branch_nodes,
    get_exclusive_branch_ids,
    get_subtree_nodes,
    shift_subtree,
    sort_nodes_by_depth,
)


def _tree():
    nodes = [
        make_node("root", 0, 0),
        make_node("a", -100, 300),
        make_node("b", 100, 300),
        make_node("a1", -100, 600),
        make_node("other", 500, 0),
    ]
    edges = [edge("root", "a", "true"), edge("root", "b", "false"), edge("a", "a1")]
    return nodes, edges


class TestSubtreeNodes:

    def test_includes_root_and_descendants(self) -> None:
        nodes, edges = _tree()
        ids = [n.id for n in get_subtree_nodes("a", edges, nodes)]
        assert ids == ["a", "a1"]

    def test_whole_tree(self) -> None:
        nodes, edges = _tree()
        ids = {n.id for n in get_subtree_nodes("root", edges, nodes)}
        assert ids == {"root", "a", "b", "a1"}

    def test_cycle_terminates(self) -> None:
        nodes = [make_node("x", 0, 0), make_node("y", 0, 300)]
        edges = [edge("x", "y"), edge("y", "x")]
        ids = {n.id for n in get_subtree_nodes("x", edges, nodes)}
        assert ids == {"x", "y"}


class TestShiftSubtree:

    def test_moves_whole_subtree_by_offset(self) -> None:
        nodes, edges = _tree()
        shifted = shift_subtree("a", -75, nodes, edges)
        by_id = {n.id: n for n in shifted}
        assert by_id["a"].position.x == -175
        assert by_id["a1"].position.x == -175
        # y never changes
        assert by_id["a"].position.y == 300
        assert by_id["a1"].position.y == 600

    def test_unreachable_nodes_are_same_objects(self) -> None:
        nodes, edges = _tree()
        shifted = shift_subtree("a", 50, nodes, edges)
        for before, after in zip(nodes, shifted):
            if before.id in ("root", "b", "other"):
                assert after is before

    def test_input_not_mutated(self) -> None:
        nodes, edges = _tree()
        shift_subtree("root", 10, nodes, edges)
        assert nodes[0].position.x == 0

    def test_zero_offset_is_identity(self) -> None:
        nodes, edges = _tree()
        shifted = shift_subtree("root", 0, nodes, edges)
        assert all(a is b for a, b in zip(nodes, shifted))


class TestBranchNodes:

    def test_branch_by_handle(self) -> None:
        nodes, edges = _tree()
        assert [n.id for n in get_branch_nodes("root", "true", edges, nodes)] == ["a", "a1"]
        assert [n.id for n in get_branch_nodes("root", "false", edges, nodes)] == ["b"]

    def test_empty_branch(self) -> None:
        nodes, edges = _tree()
        assert get_branch_nodes("root", "else", edges, nodes) == []

    def test_missing_targets_skipped(self) -> None:
        nodes, edges = _tree()
        edges.append(edge("b", "ghost"))
        assert [n.id for n in get_branch_nodes("root", "false", edges, nodes)] == ["b"]

    def test_exclusive_ids_drop_join(self) -> None:
        nodes, edges = _tree()
        nodes.append(make_node("join", 0, 900))
        edges += [edge("a1", "join"), edge("b", "join")]
        assert get_exclusive_branch_ids("root", "true", "false", edges) == {"a", "a1"}
        assert get_exclusive_branch_ids("root", "false", "true", edges) == {"b"}

    def test_exclusive_ids_empty_sibling(self) -> None:
        nodes, edges = _tree()
        assert get_exclusive_branch_ids("root", "true", "else", edges) == {"a", "a1"}


class TestSortByDepth:

    def test_parents_before_children(self) -> None:
        nodes = [make_node("c", 0, 900), make_node("a", 0, 300), make_node("b", 0, 600)]
        edges = [edge("a", "b"), edge("b", "c")]
        assert [n.id for n in sort_nodes_by_depth(nodes, edges)] == ["a", "b", "c"]

    def test_pure_cycle_keeps_every_node(self) -> None:
        nodes = [make_node("a", 0, 0), make_node("b", 0, 300)]
        edges = [edge("a", "b"), edge("b", "a")]
        assert [n.id for n in sort_nodes_by_depth(nodes, edges)] == ["a", "b"]
