"""
Tuning constants for the branching layout engine.

These are the fixed numbers the editor canvas was calibrated against.
Only the five ``TreeLayoutConfig`` fields are meant to be overridden per call.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Config defaults
# ---------------------------------------------------------------------------

DEFAULT_HORIZONTAL_SPACING: float = 250
DEFAULT_VERTICAL_SPACING: float = 350
DEFAULT_BRANCH_OFFSET: float = 150
DEFAULT_NODE_WIDTH: float = 200
DEFAULT_MIN_BRANCH_GAP: float = 100


# ---------------------------------------------------------------------------
# Collision detection
# ---------------------------------------------------------------------------

# Nodes further apart than this vertically never collide.
SAME_ROW_TOLERANCE: float = 150

# Rows for the neighbour pass are floor(y / ROW_BUCKET) * ROW_BUCKET.
ROW_BUCKET: float = 100

# Added on top of every computed shift to stop rounding churn.
SETTLE_EPSILON: float = 10

MAX_ITERATIONS: int = 10


# ---------------------------------------------------------------------------
# N-way (multi-condition) brackets
# ---------------------------------------------------------------------------

# Horizontal distance between adjacent branch trunks; matches the node widget.
MULTI_BRANCH_SPACING: float = 220

# Extra clearance around a bracket on top of min_branch_gap.
BRACKET_PADDING: float = 80

# How far below an N-way node foreign subtrees are still pushed out.
BRACKET_ZONE_DEPTH: float = 500

# Same-level band for bracket checks.
BRACKET_SAME_LEVEL: float = 100

BRACKET_PUSH_MARGIN: float = 40


# ---------------------------------------------------------------------------
# Node catalog
# ---------------------------------------------------------------------------

CONDITION_DATA_TYPE = "condition"
CONDITIONAL_NODE_TYPE = "conditional"
MULTI_CONDITION_RETURN_TYPES = frozenset({"string", "integer"})
ELSE_BRANCH_ID = "else"

# Offset for a node appended below a non-branching parent.
STRAIGHT_APPEND_OFFSET: float = 200
