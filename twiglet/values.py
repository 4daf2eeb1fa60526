"""
Semantics of dynamic template values.

Values are plain Python data: None, bool, int, float, str, list and dict
(tuples are treated as lists). This module defines how such values are
printed, tested for truth and compared inside templates.
"""

from __future__ import annotations

from typing import Any

from .errors import ErrorCode, RenderError
from .jsonic import dumps


def is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def is_number(value: Any) -> bool:
    """int or float; bool does not count."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_string(value: Any) -> str:
    """
    Output form of a value.

    None renders as an empty string, booleans as true/false,
    arrays and objects as compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if is_number(value):
        return str(value)
    if isinstance(value, (list, tuple, dict)):
        return dumps(value)
    return str(value)


def is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return len(value) > 0
    if is_number(value):
        return value != 0
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return False


def values_equal(a: Any, b: Any) -> bool:
    """Equality is defined only for str/str, int/int and bool/bool pairs."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if isinstance(a, int) and isinstance(b, int):
        return a == b
    return False


def to_float(value: Any) -> float:
    """Numeric coercion used by ordering operators; non-numbers are 0."""
    if is_number(value):
        try:
            return float(value)
        except OverflowError:
            return float("inf") if value > 0 else float("-inf")
    return 0.0


def compare(left: Any, op: str, right: Any) -> bool:
    """
    Applies a comparison operator.

    Raises:
        RenderError: UnsupportedOp for an unknown operator
    """
    if op == "==":
        return values_equal(left, right)
    if op == "!=":
        return not values_equal(left, right)

    a, b = to_float(left), to_float(right)
    if op == "<":
        return a < b
    if op == ">":
        return a > b
    if op == "<=":
        return a <= b
    if op == ">=":
        return a >= b
    raise RenderError(ErrorCode.UNSUPPORTED_OP, f"operator '{op}'")


__all__ = [
    "is_sequence", "is_number", "to_string", "is_truthy",
    "values_equal", "to_float", "compare",
]
