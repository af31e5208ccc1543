"""
Core value classes for the branching layout engine.

Nodes and edges mirror the graph store's JSON shape (React-Flow style) so a
snapshot can be read, laid out and handed back without losing any keys the
engine does not care about.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from flow_layout.constants import (
    DEFAULT_BRANCH_OFFSET,
    DEFAULT_HORIZONTAL_SPACING,
    DEFAULT_MIN_BRANCH_GAP,
    DEFAULT_NODE_WIDTH,
    DEFAULT_VERTICAL_SPACING,
)
from flow_layout.validation import (
    ValidationError,
    validate_dict,
    validate_list,
    validate_non_empty_string,
    validate_non_negative_number,
    validate_number,
    validate_positive_number,
    validate_string,
)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# camelCase (graph store spelling) -> field name
_CONFIG_ALIASES: dict[str, str] = {
    "horizontalSpacing": "horizontal_spacing",
    "verticalSpacing": "vertical_spacing",
    "branchOffset": "branch_offset",
    "nodeWidth": "node_width",
    "minBranchGap": "min_branch_gap",
}


@dataclass(frozen=True)
class TreeLayoutConfig:
    """Immutable tunables for the branching layout engine."""
    horizontal_spacing: float = DEFAULT_HORIZONTAL_SPACING
    vertical_spacing: float = DEFAULT_VERTICAL_SPACING
    branch_offset: float = DEFAULT_BRANCH_OFFSET   # Default lateral nudge for a two-way branch
    node_width: float = DEFAULT_NODE_WIDTH         # Uniform footprint used for all overlap math
    min_branch_gap: float = DEFAULT_MIN_BRANCH_GAP  # Minimum empty space between branch footprints

    @classmethod
    def from_overrides(cls, overrides: Optional[dict[str, Any]] = None) -> TreeLayoutConfig:
        """Build a config from a partial mapping.

        Keys may use either the snake_case field names or the camelCase
        spelling the graph store persists. Unknown keys are rejected.
        """
        if not overrides:
            return cls()
        validate_dict(overrides, "config")
        values: dict[str, float] = {}
        for key, raw in overrides.items():
            name = _CONFIG_ALIASES.get(key, key)
            if name not in _CONFIG_ALIASES.values():
                raise ValidationError(f"Unknown layout config key '{key}'.")
            if name == "min_branch_gap":
                values[name] = validate_non_negative_number(raw, key)
            elif name == "branch_offset":
                values[name] = validate_number(raw, key)
            else:
                values[name] = validate_positive_number(raw, key)
        return cls(**values)

    def with_overrides(self, overrides: Optional[dict[str, Any]] = None) -> TreeLayoutConfig:
        """Return a copy of this config with *overrides* applied."""
        if not overrides:
            return self
        merged = {**self.to_dict(), **overrides}
        return TreeLayoutConfig.from_overrides(merged)

    def to_dict(self) -> dict[str, float]:
        return {alias: getattr(self, name) for alias, name in _CONFIG_ALIASES.items()}

    @property
    def half_width(self) -> float:
        return self.node_width / 2


# ---------------------------------------------------------------------------
# Graph data
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Position:
    """A 2-D coordinate; y grows away from the graph's roots."""
    x: float
    y: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


# A computed placement, distinct from a node's committed position.
TreePosition = Position


@dataclass
class FlowNode:
    """A node as held by the graph store."""
    id: str
    position: Position
    type: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    # Keys the engine does not interpret (width, selected, style, ...)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def x(self) -> float:
        return self.position.x

    @property
    def y(self) -> float:
        return self.position.y

    @property
    def inputs(self) -> dict[str, Any]:
        inputs = self.data.get("inputs") if isinstance(self.data, dict) else None
        return inputs if isinstance(inputs, dict) else {}

    def moved(self, x: float, y: Optional[float] = None) -> FlowNode:
        """Return a copy placed at *x* (and *y*, when given)."""
        return replace(
            self, position=Position(x, self.position.y if y is None else y)
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id}
        if self.type is not None:
            out["type"] = self.type
        out["position"] = self.position.to_dict()
        out["data"] = self.data
        out.update(self.extra)
        return out

    @classmethod
    def from_dict(cls, raw: Any, index: int = 0) -> FlowNode:
        validate_dict(raw, f"nodes[{index}]")
        node_id = validate_non_empty_string(raw.get("id"), f"nodes[{index}].id")
        pos = validate_dict(raw.get("position", {"x": 0, "y": 0}), f"nodes[{index}].position")
        x = validate_number(pos.get("x", 0), f"nodes[{index}].position.x")
        y = validate_number(pos.get("y", 0), f"nodes[{index}].position.y")
        node_type = raw.get("type")
        if node_type is not None:
            node_type = validate_string(node_type, f"nodes[{index}].type")
        data = raw.get("data") or {}
        validate_dict(data, f"nodes[{index}].data")
        extra = {
            k: v for k, v in raw.items()
            if k not in ("id", "type", "position", "data")
        }
        return cls(id=node_id, position=Position(x, y), type=node_type, data=data, extra=extra)


@dataclass
class FlowEdge:
    """A directed edge; ``source_handle`` names the branch it leaves from."""
    source: str
    target: str
    source_handle: Optional[str] = None
    id: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id or _edge_id(self.source, self.target, self.source_handle),
            "source": self.source,
            "target": self.target,
        }
        if self.source_handle is not None:
            out["sourceHandle"] = self.source_handle
        out.update(self.extra)
        return out

    @classmethod
    def from_dict(cls, raw: Any, index: int = 0) -> FlowEdge:
        validate_dict(raw, f"edges[{index}]")
        source = validate_non_empty_string(raw.get("source"), f"edges[{index}].source")
        target = validate_non_empty_string(raw.get("target"), f"edges[{index}].target")
        handle = raw.get("sourceHandle", raw.get("source_handle"))
        if handle is not None and not isinstance(handle, str):
            # Same spelling as case ids: 2 -> "2", true -> "true"
            handle = json.dumps(handle)
        edge_id = raw.get("id")
        extra = {
            k: v for k, v in raw.items()
            if k not in ("id", "source", "target", "sourceHandle", "source_handle")
        }
        return cls(
            source=source,
            target=target,
            source_handle=handle,
            id=str(edge_id) if edge_id is not None else None,
            extra=extra,
        )


@dataclass
class GraphSnapshot:
    """The complete node and edge collections of one graph."""
    nodes: list[FlowNode] = field(default_factory=list)
    edges: list[FlowEdge] = field(default_factory=list)

    def find_node(self, node_id: str) -> FlowNode | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    def to_json(self, pretty: bool = True) -> str:
        return json.dumps(self.to_dict(), indent=2 if pretty else None)

    @classmethod
    def from_dict(cls, raw: Any) -> GraphSnapshot:
        validate_dict(raw, "graph")
        nodes_raw = validate_list(raw.get("nodes", []), "nodes")
        edges_raw = validate_list(raw.get("edges", []), "edges")
        nodes = [FlowNode.from_dict(n, i) for i, n in enumerate(nodes_raw)]
        seen: set[str] = set()
        for n in nodes:
            if n.id in seen:
                raise ValidationError(f"Duplicate node id '{n.id}'.")
            seen.add(n.id)
        edges = [FlowEdge.from_dict(e, i) for i, e in enumerate(edges_raw)]
        return cls(nodes=nodes, edges=edges)

    @classmethod
    def from_json(cls, text: str) -> GraphSnapshot:
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid graph JSON: {exc.msg} (line {exc.lineno}).") from exc
        return cls.from_dict(raw)


# ---------------------------------------------------------------------------
# Engine results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BranchDescriptor:
    """One branch of a conditional node, in canonical left-to-right order."""
    id: str
    label: str
    index: int


@dataclass(frozen=True)
class BranchExtent:
    """Horizontal bounding box of a branch, node width included."""
    min_x: float
    max_x: float

    def gap_to(self, other: BranchExtent) -> float:
        """Empty space between this extent and *other* lying to its right."""
        return other.min_x - self.max_x

    def to_dict(self) -> dict[str, float]:
        return {"minX": self.min_x, "maxX": self.max_x}


@dataclass
class CollisionResult:
    """Outcome of a same-row overlap test."""
    has_collision: bool
    colliding_node: Optional[FlowNode] = None
    required_shift: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"hasCollision": self.has_collision}
        if self.colliding_node is not None:
            out["collidingNode"] = self.colliding_node.id
        if self.required_shift is not None:
            out["requiredShift"] = self.required_shift
        return out


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _edge_id(source: str, target: str, handle: Optional[str]) -> str:
    if handle:
        return f"{source}-{handle}-{target}"
    return f"{source}-{target}"


def index_nodes(nodes: list[FlowNode]) -> dict[str, FlowNode]:
    """Map node id -> node."""
    return {n.id: n for n in nodes}


def children_index(edges: list[FlowEdge]) -> dict[str, list[FlowEdge]]:
    """Map source id -> outgoing edges, preserving edge order."""
    out: dict[str, list[FlowEdge]] = {}
    for e in edges:
        out.setdefault(e.source, []).append(e)
    return out
