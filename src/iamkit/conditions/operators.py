"""
Built-in condition operators.

Every operator has the signature (key, expected, context) -> bool and
reads the actual value from context[key]. A missing key is distinct
from a key holding None.

All operators are total: type mismatches, unhashable or incomparable
values and invalid patterns evaluate to False, never raise.
"""

import functools
import re
from collections.abc import Callable, Mapping
from typing import Any

# Marker for a key that is absent from the context map
MISSING = object()

_Predicate = Callable[[str, Any, Mapping[str, Any]], bool]


def _total(func: _Predicate) -> _Predicate:
    """Make an operator total: any exception evaluates to False."""

    @functools.wraps(func)
    def wrapper(key: str, expected: Any, context: Mapping[str, Any]) -> bool:
        try:
            return bool(func(key, expected, context))
        except Exception:
            return False

    return wrapper


def _lookup(context: Mapping[str, Any], key: str) -> Any:
    """Read key from context, returning MISSING when absent."""
    if not isinstance(context, Mapping):
        return MISSING
    return context.get(key, MISSING)


def _is_number(value: Any) -> bool:
    """True for int/float, excluding bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_sequence(value: Any) -> bool:
    """True for list/tuple values (text is not a sequence here)."""
    return isinstance(value, (list, tuple))


def strict_equals(actual: Any, expected: Any) -> bool:
    """
    Equality without cross-type coercion.

    Booleans only equal booleans, numbers only equal numbers (1 == 1.0
    holds), and a MISSING value equals nothing.
    """
    if actual is MISSING or expected is MISSING:
        return False
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if _is_number(actual) and _is_number(expected):
        return actual == expected
    if type(actual) is not type(expected):
        return False
    return actual == expected


def _member(item: Any, sequence: Any) -> bool:
    return any(strict_equals(item, candidate) for candidate in sequence)


# =============================================================================
# Operators
# =============================================================================


@_total
def op_eq(key: str, expected: Any, context: Mapping[str, Any]) -> bool:
    """context[key] strictly equals expected."""
    return strict_equals(_lookup(context, key), expected)


@_total
def op_ne(key: str, expected: Any, context: Mapping[str, Any]) -> bool:
    """Negation of eq."""
    return not strict_equals(_lookup(context, key), expected)


def _numeric(compare: Callable[[Any, Any], bool], doc: str) -> _Predicate:
    @_total
    def op(key: str, expected: Any, context: Mapping[str, Any]) -> bool:
        actual = _lookup(context, key)
        if not (_is_number(actual) and _is_number(expected)):
            return False
        return compare(actual, expected)

    op.__doc__ = doc
    return op


op_gt = _numeric(lambda a, b: a > b, "context[key] > expected (numbers only).")
op_lt = _numeric(lambda a, b: a < b, "context[key] < expected (numbers only).")
op_gte = _numeric(lambda a, b: a >= b, "context[key] >= expected (numbers only).")
op_lte = _numeric(lambda a, b: a <= b, "context[key] <= expected (numbers only).")


@_total
def op_in(key: str, expected: Any, context: Mapping[str, Any]) -> bool:
    """expected is a sequence and context[key] is one of its members."""
    if not _is_sequence(expected):
        return False
    return _member(_lookup(context, key), expected)


@_total
def op_contains(key: str, expected: Any, context: Mapping[str, Any]) -> bool:
    """
    Text or sequence containment.

    Text: the context value contains str(expected).
    Sequence: expected is a member of the context value.
    """
    actual = _lookup(context, key)
    if isinstance(actual, str):
        return str(expected) in actual
    if _is_sequence(actual):
        return _member(expected, actual)
    return False


@_total
def op_regex(key: str, expected: Any, context: Mapping[str, Any]) -> bool:
    """context[key] is text matching the pattern (compiled pattern or source)."""
    if isinstance(expected, re.Pattern):
        pattern = expected
    elif isinstance(expected, str):
        try:
            pattern = re.compile(expected)
        except re.error:
            return False
    else:
        return False

    actual = _lookup(context, key)
    if not isinstance(actual, str):
        return False
    return pattern.search(actual) is not None


DEFAULT_OPERATORS: dict[str, _Predicate] = {
    "eq": op_eq,
    "ne": op_ne,
    "gt": op_gt,
    "lt": op_lt,
    "gte": op_gte,
    "lte": op_lte,
    "in": op_in,
    "contains": op_contains,
    "regex": op_regex,
}
