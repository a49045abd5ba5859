"""JSON-shaped values carried in caveats and facts.

Caveats and facts are arbitrary nested, string-keyed, JSON-representable
data. Python's own ``==`` treats ``True == 1`` and ``1 == 1.0`` as equal,
which is wrong for JSON values, so equality and containment go through
:func:`json_equal` and :func:`is_submapping`.
"""
from __future__ import annotations

from typing import Any, Union

JsonValue = Union[None, bool, int, float, str, list["JsonValue"], dict[str, "JsonValue"]]
JsonObject = dict[str, JsonValue]


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    raise TypeError(f"{type(value).__name__} is not a JSON value")


def is_json_value(value: Any) -> bool:
    """Return True if *value* is a JSON-representable structure."""
    try:
        kind = _kind(value)
    except TypeError:
        return False
    if kind == "array":
        return all(is_json_value(item) for item in value)
    if kind == "object":
        return all(isinstance(k, str) and is_json_value(v) for k, v in value.items())
    return True


def json_equal(left: Any, right: Any) -> bool:
    """Structural equality over JSON values (booleans are not numbers)."""
    kind = _kind(left)
    if kind != _kind(right):
        return False
    if kind == "array":
        return len(left) == len(right) and all(
            json_equal(a, b) for a, b in zip(left, right)
        )
    if kind == "object":
        return left.keys() == right.keys() and all(
            json_equal(value, right[key]) for key, value in left.items()
        )
    return left == right


def is_submapping(subset: JsonObject, superset: JsonObject) -> bool:
    """Return True if every key of *subset* is in *superset* with an equal value."""
    return all(
        key in superset and json_equal(value, superset[key]) for key, value in subset.items()
    )


__all__ = ["JsonObject", "JsonValue", "is_json_value", "is_submapping", "json_equal"]
