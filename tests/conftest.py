"""Shared graph builders for the layout tests."""

from __future__ import annotations

from typing import Any

from flow_layout.models import FlowEdge, FlowNode, Position


def make_node(node_id: str, x: float, y: float, **data: Any) -> FlowNode:
    return FlowNode(id=node_id, position=Position(x, y), type="custom", data=dict(data))


def make_conditional(node_id: str, x: float, y: float) -> FlowNode:
    return FlowNode(
        id=node_id,
        position=Position(x, y),
        type="conditional",
        data={"type": "condition", "inputs": {}},
    )


def make_multi(node_id: str, x: float, y: float, values: list[Any]) -> FlowNode:
    return FlowNode(
        id=node_id,
        position=Position(x, y),
        type="conditional",
        data={
            "type": "condition",
            "inputs": {
                "multipleConditions": True,
                "returnType": "string",
                "cases": [{"returnValue": v} for v in values],
            },
        },
    )


def edge(source: str, target: str, handle: str | None = None) -> FlowEdge:
    return FlowEdge(source=source, target=target, source_handle=handle)
