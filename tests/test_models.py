"""Tests for the graph model classes and layout config."""

import pytest

from flow_layout.models import (
    BranchExtent,
    FlowEdge,
    FlowNode,
    GraphSnapshot,
    Position,
    TreeLayoutConfig,
)
from flow_layout.validation import ValidationError


def test_config_defaults() -> None:
    cfg = TreeLayoutConfig()
    assert cfg.horizontal_spacing == 250
    assert cfg.vertical_spacing == 350
    assert cfg.branch_offset == 150
    assert cfg.node_width == 200
    assert cfg.min_branch_gap == 100


def test_config_overrides_accept_both_spellings() -> None:
    cfg = TreeLayoutConfig.from_overrides({"nodeWidth": 180, "min_branch_gap": 60})
    assert cfg.node_width == 180
    assert cfg.min_branch_gap == 60
    # Untouched fields keep their defaults
    assert cfg.vertical_spacing == 350


def test_config_with_overrides_keeps_base() -> None:
    base = TreeLayoutConfig(node_width=150)
    cfg = base.with_overrides({"verticalSpacing": 200})
    assert cfg.node_width == 150
    assert cfg.vertical_spacing == 200
    assert base.with_overrides(None) is base


def test_config_rejects_unknown_key() -> None:
    with pytest.raises(ValidationError, match="Unknown layout config key"):
        TreeLayoutConfig.from_overrides({"nodeHeight": 10})


def test_config_rejects_non_positive_width() -> None:
    with pytest.raises(ValidationError):
        TreeLayoutConfig.from_overrides({"nodeWidth": 0})
    with pytest.raises(ValidationError):
        TreeLayoutConfig.from_overrides({"minBranchGap": -1})


def test_config_to_dict_is_camel_case() -> None:
    assert TreeLayoutConfig().to_dict() == {
        "horizontalSpacing": 250,
        "verticalSpacing": 350,
        "branchOffset": 150,
        "nodeWidth": 200,
        "minBranchGap": 100,
    }


def test_node_round_trip_keeps_unknown_keys() -> None:
    raw = {
        "id": "n1",
        "type": "custom",
        "position": {"x": 10, "y": 20},
        "data": {"label": "Hello"},
        "selected": True,
    }
    node = FlowNode.from_dict(raw)
    assert node.position == Position(10, 20)
    assert node.extra == {"selected": True}
    assert node.to_dict() == raw


def test_node_moved_returns_copy() -> None:
    node = FlowNode(id="n", position=Position(0, 5))
    moved = node.moved(40)
    assert moved is not node
    assert moved.position == Position(40, 5)
    assert node.position == Position(0, 5)


def test_edge_integer_handle_becomes_string() -> None:
    e = FlowEdge.from_dict({"source": "a", "target": "b", "sourceHandle": 2})
    assert e.source_handle == "2"
    assert e.to_dict()["id"] == "a-2-b"


def test_edge_boolean_handle_matches_branch_id() -> None:
    e = FlowEdge.from_dict({"source": "c", "target": "t", "sourceHandle": True})
    assert e.source_handle == "true"
    e = FlowEdge.from_dict({"source": "c", "target": "f", "sourceHandle": False})
    assert e.source_handle == "false"


def test_snapshot_from_json() -> None:
    snap = GraphSnapshot.from_json(
        '{"nodes": [{"id": "a", "position": {"x": 0, "y": 0}}], '
        '"edges": [{"source": "a", "target": "b"}]}'
    )
    assert [n.id for n in snap.nodes] == ["a"]
    assert snap.edges[0].target == "b"
    assert snap.find_node("a") is snap.nodes[0]
    assert snap.find_node("zz") is None


def test_snapshot_rejects_bad_json() -> None:
    with pytest.raises(ValidationError, match="Invalid graph JSON"):
        GraphSnapshot.from_json("{nodes: ")


def test_snapshot_rejects_duplicate_ids() -> None:
    with pytest.raises(ValidationError, match="Duplicate node id"):
        GraphSnapshot.from_dict({"nodes": [
            {"id": "a", "position": {"x": 0, "y": 0}},
            {"id": "a", "position": {"x": 1, "y": 0}},
        ]})


def test_snapshot_rejects_missing_id() -> None:
    with pytest.raises(ValidationError, match="nodes\\[0\\].id"):
        GraphSnapshot.from_dict({"nodes": [{"position": {"x": 0, "y": 0}}]})


def test_branch_extent_helpers() -> None:
    left = BranchExtent(min_x=0, max_x=200)
    right = BranchExtent(min_x=300, max_x=500)
    assert left.gap_to(right) == 100
    assert right.gap_to(left) == -500
    assert right.to_dict() == {"minX": 300, "maxX": 500}
