"""
Condition operators for iamkit.

A Condition names an operator, a context key and an expected value.
The operator registry resolves the name to a predicate
(key, expected, context) -> bool.

Built-in operators:
    - eq / ne: strict equality and its negation
    - gt / lt / gte / lte: numeric comparison (non-numbers never match)
    - in: context value is a member of the expected sequence
    - contains: text contains expected, or sequence holds expected
    - regex: context text matches a pattern

Custom operators may be plain functions or coroutine functions.
"""

from iamkit.conditions.operators import DEFAULT_OPERATORS, MISSING, strict_equals
from iamkit.conditions.registry import (
    ConditionOperator,
    ConditionOperatorRegistry,
    create_default_registry,
)

__all__ = [
    "ConditionOperator",
    "ConditionOperatorRegistry",
    "DEFAULT_OPERATORS",
    "MISSING",
    "create_default_registry",
    "strict_equals",
]
