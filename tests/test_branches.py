"""Tests for branch descriptors, trunk positions and safe offsets."""

import logging

from conftest import edge, make_conditional, make_multi, make_node

from flow_layout.branches import (
    bracket_bounds,
    calculate_branch_x_position,
    calculate_safe_offset,
    get_multi_condition_branches,
    is_conditional,
    is_multi_condition,
)
from flow_layout.models import FlowNode, Position


class TestCatalog:

    def test_conditional_by_data_type_or_node_type(self) -> None:
        assert is_conditional(make_conditional("c", 0, 0))
        assert is_conditional(FlowNode(id="c", position=Position(0, 0), data={"type": "condition"}))
        assert is_conditional(FlowNode(id="c", position=Position(0, 0), type="conditional"))
        assert not is_conditional(make_node("n", 0, 0))

    def test_multi_condition_needs_string_or_integer(self) -> None:
        node = make_multi("m", 0, 0, ["a"])
        assert is_multi_condition(node)
        node.data["inputs"]["returnType"] = "boolean"
        assert not is_multi_condition(node)


class TestDescriptors:

    def test_binary(self) -> None:
        branches = get_multi_condition_branches(make_conditional("c", 0, 0))
        assert [(b.id, b.label, b.index) for b in branches] == [
            ("true", "TRUE", 0),
            ("false", "FALSE", 1),
        ]

    def test_cases_deduplicated_then_else(self) -> None:
        node = make_multi("m", 0, 0, ["low", "high", "low", "mid"])
        branches = get_multi_condition_branches(node)
        assert [b.id for b in branches] == ["low", "high", "mid", "else"]
        assert [b.index for b in branches] == [0, 1, 2, 3]
        assert branches[1].label == "HIGH"

    def test_declared_else_case_not_duplicated(self) -> None:
        node = make_multi("m", 0, 0, ["a", "else", "b"])
        branches = get_multi_condition_branches(node)
        assert [(b.id, b.index) for b in branches] == [("a", 0), ("b", 1), ("else", 2)]

    def test_cases_as_json_string(self) -> None:
        node = make_multi("m", 0, 0, [])
        node.data["inputs"]["cases"] = '[{"returnValue": "x"}, {"returnValue": "y"}]'
        assert [b.id for b in get_multi_condition_branches(node)] == ["x", "y", "else"]

    def test_integer_cases_match_handles(self) -> None:
        node = make_multi("m", 0, 0, [1, 2])
        node.data["inputs"]["returnType"] = "integer"
        assert [b.id for b in get_multi_condition_branches(node)] == ["1", "2", "else"]

    def test_malformed_cases_degrade_to_else(self) -> None:
        node = make_multi("m", 0, 0, [])
        node.data["inputs"]["cases"] = "[{not json"
        branches = get_multi_condition_branches(node)
        assert [(b.id, b.index) for b in branches] == [("else", 0)]

    def test_non_list_and_bad_entries_skipped(self) -> None:
        node = make_multi("m", 0, 0, [])
        node.data["inputs"]["cases"] = [{"label": "no value"}, "junk", {"returnValue": "ok"}]
        assert [b.id for b in get_multi_condition_branches(node)] == ["ok", "else"]
        node.data["inputs"]["cases"] = {"returnValue": "x"}
        assert [b.id for b in get_multi_condition_branches(node)] == ["else"]


class TestBranchXPosition:

    def test_multi_branches_symmetric(self) -> None:
        node = make_multi("m", 0, 0, ["a", "b", "c"])
        xs = [calculate_branch_x_position(node, b) for b in ("a", "b", "c", "else")]
        assert xs == [-330, -110, 110, 330]
        centers = [x + 100 for x in xs]
        assert {b - a for a, b in zip(centers, centers[1:])} == {220}
        assert sum(centers) / len(centers) == 100

    def test_binary_uses_safe_offset(self) -> None:
        node = make_conditional("c", 0, 0)
        assert calculate_branch_x_position(node, "true", [node], []) == -150
        assert calculate_branch_x_position(node, "false", [node], []) == 150

    def test_missing_branch_centers_and_warns(self, caplog) -> None:
        node = make_multi("m", 40, 0, ["a"])
        with caplog.at_level(logging.WARNING, logger="flow-layout"):
            x = calculate_branch_x_position(node, "zzz")
        assert x == 40
        assert "not found" in caplog.text


class TestSafeOffset:

    def test_default_without_opposite(self) -> None:
        nodes = [make_conditional("c", 0, 0)]
        assert calculate_safe_offset("c", "true", nodes, []) == 150

    def test_true_clears_false_extent(self) -> None:
        nodes = [make_conditional("c", 0, 0), make_node("f", -100, 350)]
        edges = [edge("c", "f", "false")]
        # false extent [-100, 100]; trunk must sit 100 left of -100
        assert calculate_safe_offset("c", "true", nodes, edges) == 300

    def test_false_clears_true_extent(self) -> None:
        nodes = [make_conditional("c", 0, 0), make_node("t", 300, 350)]
        edges = [edge("c", "t", "true")]
        assert calculate_safe_offset("c", "false", nodes, edges) == 500

    def test_never_below_branch_offset(self) -> None:
        nodes = [make_conditional("c", 0, 0), make_node("f", 120, 350)]
        edges = [edge("c", "f", "false")]
        assert calculate_safe_offset("c", "true", nodes, edges) == 150

    def test_multi_uses_index_spacing(self) -> None:
        nodes = [make_multi("m", 0, 0, ["a", "b", "c"])]
        assert calculate_safe_offset("m", "a", nodes, []) == 330
        assert calculate_safe_offset("m", "c", nodes, []) == 110
        assert calculate_safe_offset("m", "missing", nodes, []) == 150

    def test_unknown_conditional_falls_back(self) -> None:
        assert calculate_safe_offset("ghost", "true", [], []) == 150


def test_bracket_bounds() -> None:
    node = make_multi("m", 0, 0, ["a", "b", "c"])
    assert bracket_bounds(node) == (-330, 530)
