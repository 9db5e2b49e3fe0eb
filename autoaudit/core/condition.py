from __future__ import annotations

from typing import Any, Iterable

from .models import AutomationItem, Condition

_VALID_OPS = {"eq", "ne", "in", "not_in"}
_SET_OPS = {"in", "not_in"}
_SET_TYPES = (list, tuple, set, frozenset)

_MISSING = object()


def parse_condition(node: dict) -> Condition:
    """Build a Condition from a ``{field, op, value}`` mapping.

    ``operator`` is accepted as a spelling of ``op``.
    """
    op = node.get("op", node.get("operator"))
    value = node.get("value")
    if op in _SET_OPS and isinstance(value, _SET_TYPES):
        value = tuple(value)
    return Condition(field=node.get("field"), op=op, value=value)


def validate_conditions(conditions: Any) -> list[str]:
    """Return a list of error strings if the condition list is malformed."""
    errors: list[str] = []
    if not isinstance(conditions, list):
        errors.append(f"conditions: expected list, got {type(conditions).__name__}")
        return errors
    if not conditions:
        errors.append("conditions: at least one condition is required")
    for i, node in enumerate(conditions):
        _validate_node(node, errors, path=f"conditions[{i}]")
    return errors


def _validate_node(node: Any, errors: list[str], path: str) -> None:
    if not isinstance(node, dict):
        errors.append(f"{path}: expected dict, got {type(node).__name__}")
        return

    if "op" not in node and "operator" in node:
        node = {**node, "op": node["operator"]}
    for key in ("field", "op", "value"):
        if key not in node:
            errors.append(f"{path}: missing required key '{key}'")
    if "field" in node and not isinstance(node["field"], str):
        errors.append(f"{path}: 'field' must be a string")
    if "op" in node and node["op"] not in _VALID_OPS:
        errors.append(f"{path}: unknown operator '{node['op']}' (valid: {sorted(_VALID_OPS)})")
    if node.get("op") in _SET_OPS:
        val = node.get("value")
        if not isinstance(val, _SET_TYPES):
            errors.append(f"{path}: '{node['op']}' operator requires a list value, got {type(val).__name__}")


def evaluate_conditions(conditions: Iterable[Condition], item: AutomationItem) -> bool:
    """AND-combine a condition list against one item.

    An empty list never matches. Unknown operators and missing fields
    evaluate to False rather than raising.
    """
    conditions = list(conditions)
    if not conditions:
        return False
    return all(evaluate_condition(c, item) for c in conditions)


def evaluate_condition(condition: Condition, item: AutomationItem) -> bool:
    actual = resolve_field(item, condition.field)

    # Explicit contract: missing field → False, for every operator
    if actual is _MISSING:
        return False

    op = condition.op
    expected = condition.value
    if op == "eq":
        return actual == expected
    if op == "ne":
        return actual != expected
    if op in _SET_OPS:
        if not isinstance(expected, _SET_TYPES):
            return False
        try:
            found = actual in expected
        except TypeError:
            return False
        return found if op == "in" else not found
    return False


def resolve_field(item: AutomationItem, dotted_key: Any) -> Any:
    """Resolve an item attribute or a dotted ``metadata.<key>`` path.

    Returns the ``_MISSING`` sentinel when nothing is found.
    """
    if not isinstance(dotted_key, str) or not dotted_key:
        return _MISSING
    head, _, rest = dotted_key.partition(".")
    if head == "metadata" and rest:
        return _deep_get(item.metadata, rest)
    if not rest and hasattr(item, head) and not head.startswith("_"):
        value = getattr(item, head)
        return _MISSING if callable(value) else value
    return _deep_get(item.metadata, dotted_key)


def _deep_get(d: Any, dotted_key: str) -> Any:
    """Traverse nested mappings using a dotted key path."""
    current: Any = d
    for k in dotted_key.split("."):
        if not hasattr(current, "get") or k not in current:
            return _MISSING
        current = current[k]
    return current
