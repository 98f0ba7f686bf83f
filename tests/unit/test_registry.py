"""
Unit tests for ConditionOperatorRegistry.
"""

import pytest

from iamkit.conditions import (
    DEFAULT_OPERATORS,
    ConditionOperatorRegistry,
    create_default_registry,
)


def always_true(key, value, context) -> bool:
    return True


class TestRegistry:
    """register / get / all behavior."""

    def test_default_registry_has_builtins(self) -> None:
        registry = create_default_registry()
        assert registry.list_operators() == sorted(DEFAULT_OPERATORS)
        assert len(registry) == 9

    def test_get_unknown_returns_none(self) -> None:
        assert create_default_registry().get("startswith") is None

    def test_register_and_get(self) -> None:
        registry = ConditionOperatorRegistry()
        registry.register("always", always_true)
        assert registry.get("always") is always_true
        assert "always" in registry

    def test_register_overwrites(self) -> None:
        registry = create_default_registry()
        registry.register("eq", always_true)
        assert registry.get("eq") is always_true

    def test_all_returns_copy(self) -> None:
        registry = create_default_registry()
        snapshot = registry.all()
        snapshot["custom"] = always_true
        del snapshot["eq"]
        assert registry.get("custom") is None
        assert registry.get("eq") is not None

    def test_unregister(self) -> None:
        registry = create_default_registry()
        assert registry.unregister("regex") is True
        assert registry.unregister("regex") is False
        assert "regex" not in registry

    def test_registries_are_independent(self) -> None:
        first = create_default_registry()
        second = create_default_registry()
        first.register("always", always_true)
        assert "always" not in second

    def test_iterates_sorted_names(self) -> None:
        assert list(create_default_registry())[:2] == ["contains", "eq"]

    def test_rejects_empty_name(self) -> None:
        with pytest.raises(ValueError):
            ConditionOperatorRegistry().register("", always_true)

    def test_rejects_non_callable(self) -> None:
        with pytest.raises(ValueError):
            ConditionOperatorRegistry().register("bad", "not callable")  # type: ignore[arg-type]
