"""
Input validation for flow-layout MCP tool parameters and graph snapshots.

Provides reusable validators that produce clear error messages for all
parameters received from agents or from the graph store's JSON.
"""

from __future__ import annotations

from typing import Any


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Ensure *value* is a non-empty string after stripping whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def validate_string(value: Any, field_name: str, *, allow_empty: bool = True) -> str:
    """Ensure *value* is a string (optionally non-empty)."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    if not allow_empty and not value.strip():
        raise ValidationError(f"'{field_name}' must not be empty.")
    return value


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
    max_val: float | None = None,
) -> float:
    """Validate a numeric value and optional range."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a number, got {type(value).__name__}."
        )
    val = float(value)
    if val != val or val in (float("inf"), float("-inf")):
        raise ValidationError(f"'{field_name}' must be a finite number.")
    if min_val is not None and val < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {val}."
        )
    if max_val is not None and val > max_val:
        raise ValidationError(
            f"'{field_name}' must be <= {max_val}, got {val}."
        )
    return val


def validate_list(value: Any, field_name: str, *, min_length: int = 0) -> list:
    """Ensure *value* is a list with at least *min_length* items."""
    if not isinstance(value, list):
        raise ValidationError(
            f"'{field_name}' must be a list, got {type(value).__name__}."
        )
    if len(value) < min_length:
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    return value


def validate_dict(value: Any, field_name: str) -> dict:
    """Ensure *value* is a dict."""
    if not isinstance(value, dict):
        raise ValidationError(
            f"'{field_name}' must be a dict/object, got {type(value).__name__}."
        )
    return value


def validate_file_path(value: Any, field_name: str) -> str:
    """Validate that a file path is a non-empty string."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty file path string.")
    return value.strip()


def validate_positive_number(value: Any, field_name: str) -> float:
    """Validate a strictly positive number."""
    val = validate_number(value, field_name)
    if val <= 0:
        raise ValidationError(f"'{field_name}' must be > 0, got {val}.")
    return val


def validate_non_negative_number(value: Any, field_name: str) -> float:
    """Validate a number >= 0."""
    return validate_number(value, field_name, min_val=0)


# ---------------------------------------------------------------------------
# Composite / domain validators
# ---------------------------------------------------------------------------

_GRAPH_ACTIONS = {"CREATE", "IMPORT_JSON", "LOAD", "SAVE", "GET_JSON", "LIST", "DELETE"}
_EDIT_ACTIONS = {"ADD_NODE", "CONNECT", "DELETE_NODE", "MOVE_NODE"}
_LAYOUT_ACTIONS = {
    "EXPAND", "BRANCH_LAYOUT", "NEXT_POSITION", "SAFE_OFFSET", "BRANCH_WIDTH",
}
_INSPECT_ACTIONS = {"BRANCHES", "EXTENT", "SUBTREE", "COLLISION", "OVERLAPS", "INFO"}


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    if not isinstance(value, str) or not value.strip():
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    normalized = value.strip().upper()
    if normalized not in allowed:
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"Unknown {tool_name} action '{value}'. Valid actions: {choices}."
        )
    return value.strip().lower()


def validate_node_id(value: Any, field_name: str, known_ids: set[str]) -> str:
    """Validate that *value* names a node present in the graph."""
    node_id = validate_non_empty_string(value, field_name)
    if node_id not in known_ids:
        raise ValidationError(f"'{field_name}' refers to unknown node '{node_id}'.")
    return node_id


def validate_new_node_id(value: Any, known_ids: set[str]) -> str:
    """Validate a caller-chosen id for a node that is about to be added."""
    node_id = validate_non_empty_string(value, "node_id")
    if node_id in known_ids:
        raise ValidationError(f"Node '{node_id}' already exists.")
    return node_id


def validate_handle(value: Any, field_name: str = "source_handle") -> str | None:
    """Validate an optional branch handle; empty means "no handle"."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"'{field_name}' must be a string, got bool.")
    if isinstance(value, int):
        return str(value)
    return validate_non_empty_string(value, field_name)


def validate_config_overrides(value: Any) -> dict[str, Any]:
    """Validate the optional layout config override dict (keys checked later)."""
    if value is None:
        return {}
    return validate_dict(value, "config")
