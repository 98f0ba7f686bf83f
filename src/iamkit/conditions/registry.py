"""
Condition operator registry for iamkit.

The registry maps operator names to predicates usable inside Conditions.
Statements reference operators by name; an unknown name makes the
condition fail rather than raising.

Design:
    - One registry per engine, injected at construction
    - register() overwrites silently
    - all() returns a snapshot so callers cannot mutate live state

Usage:
    from iamkit.conditions import create_default_registry

    registry = create_default_registry()
    registry.register("startswith", lambda k, v, ctx: str(ctx.get(k, "")).startswith(v))
    op = registry.get("eq")
"""

from collections.abc import Awaitable, Callable, Iterator, Mapping
from typing import Any

from iamkit.conditions.operators import DEFAULT_OPERATORS

# (key, expected value, context) -> bool, possibly awaitable for custom operators
ConditionOperator = Callable[[str, Any, Mapping[str, Any]], "bool | Awaitable[bool]"]


class ConditionOperatorRegistry:
    """
    Registry for looking up condition operators by name.

    Attributes:
        _operators: Internal mapping of operator names to predicates
    """

    def __init__(self, operators: Mapping[str, ConditionOperator] | None = None) -> None:
        """
        Initialize the registry.

        Args:
            operators: Optional initial name -> predicate mapping
        """
        self._operators: dict[str, ConditionOperator] = {}
        for name, predicate in (operators or {}).items():
            self.register(name, predicate)

    def register(self, name: str, predicate: ConditionOperator) -> None:
        """
        Register an operator, replacing any operator with the same name.

        Raises:
            ValueError: If name is empty or predicate is not callable
        """
        if not name:
            msg = "Operator must have a non-empty name"
            raise ValueError(msg)
        if not callable(predicate):
            msg = f"Operator {name!r} must be callable"
            raise ValueError(msg)

        self._operators[name] = predicate

    def get(self, name: str) -> ConditionOperator | None:
        """Look up an operator by name, returning None if unregistered."""
        return self._operators.get(name)

    def all(self) -> dict[str, ConditionOperator]:
        """Return a snapshot copy of the name -> predicate mapping."""
        return dict(self._operators)

    def unregister(self, name: str) -> bool:
        """Remove an operator. Returns False if it wasn't registered."""
        if name in self._operators:
            del self._operators[name]
            return True
        return False

    def list_operators(self) -> list[str]:
        """List registered operator names in sorted order."""
        return sorted(self._operators.keys())

    def __len__(self) -> int:
        return len(self._operators)

    def __iter__(self) -> Iterator[str]:
        return iter(self.list_operators())

    def __contains__(self, name: object) -> bool:
        return name in self._operators

    def __repr__(self) -> str:
        names = ", ".join(self.list_operators())
        return f"<ConditionOperatorRegistry: [{names}]>"


def create_default_registry() -> ConditionOperatorRegistry:
    """Create a fresh registry holding the built-in operators."""
    return ConditionOperatorRegistry(DEFAULT_OPERATORS)
