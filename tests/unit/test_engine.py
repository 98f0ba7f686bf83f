"""
Unit tests for the AccessEngine.

Tests cover:
- Deny-by-default and the reference scenarios
- Policy ordering and deduplication
- First-match-wins and the deny-overrides algorithm
- Condition AND semantics and custom operators
- Fail-closed behavior (missing storage, storage errors, operator errors)
- Sync and async storage backends, dict subjects, attribute merging
"""

import asyncio

import pytest

from iamkit.conditions import create_default_registry
from iamkit.engine import NO_MATCH_REASON, AccessEngine
from iamkit.schema import (
    CombiningAlgorithm,
    Condition,
    Decision,
    Effect,
    Policy,
    Role,
    Statement,
    Subject,
)
from iamkit.storage import InMemoryStorage


def allow(actions: list[str], resources: list[str], *conditions: Condition) -> Statement:
    return Statement(effect=Effect.ALLOW, actions=actions, resources=resources, conditions=list(conditions))


def deny(actions: list[str], resources: list[str], *conditions: Condition) -> Statement:
    return Statement(effect=Effect.DENY, actions=actions, resources=resources, conditions=list(conditions))


class SyncStorage:
    """Duck-typed storage with plain (non-async) methods."""

    def __init__(self, roles: list[Role], policies: list[Policy]) -> None:
        self.roles = {r.id: r for r in roles}
        self.policies = {p.id: p for p in policies}
        self.calls: list[tuple[str, list[str]]] = []

    def get_roles(self, ids: list[str]) -> list[Role]:
        self.calls.append(("get_roles", ids))
        return [self.roles[i] for i in ids if i in self.roles]

    def get_policies(self, ids: list[str]) -> list[Policy]:
        self.calls.append(("get_policies", ids))
        # Reverse to prove the engine orders results itself
        return [self.policies[i] for i in reversed(ids) if i in self.policies]


class FailingStorage:
    """Storage whose reads always fail."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    async def get_roles(self, ids: list[str]) -> list[Role]:
        raise self.error

    async def get_policies(self, ids: list[str]) -> list[Policy]:
        raise self.error


# =============================================================================
# Reference Scenarios
# =============================================================================


class TestScenarios:
    """The documented reference scenarios."""

    @pytest.mark.asyncio
    async def test_role_policy_allows_read(self, storage: InMemoryStorage, reader: Subject) -> None:
        decision = await AccessEngine(storage=storage).evaluate(reader, "read", "doc:1", {})
        assert decision.granted is True
        assert decision.trace.checked_policy_ids == ["p1"]
        assert decision.reason == "Allowed by policy p1"

    @pytest.mark.asyncio
    async def test_unmatched_action_denied(self, storage: InMemoryStorage, reader: Subject) -> None:
        decision = await AccessEngine(storage=storage).evaluate(reader, "write", "doc:1", {})
        assert decision.granted is False
        assert decision.reason == "No matching policy"
        assert decision.trace.checked_policy_ids == ["p1"]

    @pytest.mark.asyncio
    async def test_explicit_deny(self, storage: InMemoryStorage) -> None:
        subject = Subject(id="u", policy_ids=["p2"])
        decision = await AccessEngine(storage=storage).evaluate(subject, "write", "doc:1", {})
        assert decision.granted is False
        assert decision.reason == "Denied by policy p2"
        assert decision.trace.matched_policy_id == "p2"

    @pytest.mark.asyncio
    async def test_owner_condition(self, storage: InMemoryStorage) -> None:
        subject = Subject(id="u", policy_ids=["p3"])
        engine = AccessEngine(storage=storage)

        denied = await engine.evaluate(subject, "edit", "doc:1", {"owner": "u2"})
        granted = await engine.evaluate(subject, "edit", "doc:1", {"owner": "u1"})

        assert denied.granted is False
        assert denied.reason == NO_MATCH_REASON
        assert granted.granted is True
        assert granted.context == {"owner": "u1"}


# =============================================================================
# Deny-by-default
# =============================================================================


class TestDenyByDefault:
    """No reachable policy means deny."""

    @pytest.mark.asyncio
    async def test_subject_without_references(self, storage: InMemoryStorage) -> None:
        decision = await AccessEngine(storage=storage).evaluate(Subject(id="nobody"), "read", "doc:1")
        assert decision.granted is False
        assert decision.reason == "No matching policy"
        assert decision.trace.checked_policy_ids == []

    @pytest.mark.asyncio
    async def test_unknown_references_are_skipped(self, storage: InMemoryStorage) -> None:
        subject = Subject(id="u", role_ids=["ghost"], policy_ids=["missing", "p1"])
        decision = await AccessEngine(storage=storage).evaluate(subject, "read", "doc:1")
        assert decision.granted is True
        assert decision.trace.checked_policy_ids == ["p1"]

    @pytest.mark.asyncio
    async def test_empty_statement_sets_never_match(self) -> None:
        policy = Policy(id="empty", statements=[Statement(effect=Effect.ALLOW)])
        engine = AccessEngine(storage=InMemoryStorage(policies=[policy]))
        decision = await engine.evaluate(Subject(id="u", policy_ids=["empty"]), "read", "doc:1")
        assert decision.granted is False
        assert decision.trace.checked_policy_ids == ["empty"]

    @pytest.mark.asyncio
    async def test_context_defaults_to_empty(self, storage: InMemoryStorage, reader: Subject) -> None:
        decision = await AccessEngine(storage=storage).evaluate(reader, "read", "doc:1")
        assert decision.context == {}


# =============================================================================
# Ordering and Deduplication
# =============================================================================


class TestPolicyOrder:
    """Direct policies first, then per role, each id once."""

    @pytest.fixture
    def ordered_storage(self) -> InMemoryStorage:
        policies = [
            Policy(id=pid, statements=[allow(["noop"], ["none"])])
            for pid in ("d1", "d2", "a1", "a2", "b1", "shared")
        ]
        roles = [
            Role(id="ra", policy_ids=["a1", "shared", "a2"]),
            Role(id="rb", policy_ids=["shared", "b1", "d1"]),
        ]
        return InMemoryStorage(roles=roles, policies=policies)

    @pytest.mark.asyncio
    async def test_order_direct_then_roles(self, ordered_storage: InMemoryStorage) -> None:
        subject = Subject(id="u", role_ids=["ra", "rb"], policy_ids=["d1", "d2"])
        decision = await AccessEngine(storage=ordered_storage).evaluate(subject, "read", "doc:1")
        assert decision.trace.checked_policy_ids == ["d1", "d2", "a1", "shared", "a2", "b1"]

    @pytest.mark.asyncio
    async def test_shared_policy_checked_once(self, ordered_storage: InMemoryStorage) -> None:
        subject = Subject(id="u", role_ids=["ra", "rb"], policy_ids=["shared"])
        decision = await AccessEngine(storage=ordered_storage).evaluate(subject, "read", "doc:1")
        assert decision.trace.checked_policy_ids.count("shared") == 1
        assert decision.trace.checked_policy_ids[0] == "shared"

    @pytest.mark.asyncio
    async def test_duplicate_role_references(self, ordered_storage: InMemoryStorage) -> None:
        subject = Subject(id="u", role_ids=["ra", "ra"])
        decision = await AccessEngine(storage=ordered_storage).evaluate(subject, "read", "doc:1")
        assert decision.trace.checked_policy_ids == ["a1", "shared", "a2"]

    @pytest.mark.asyncio
    async def test_storage_result_order_ignored(self) -> None:
        policies = [Policy(id=pid, statements=[allow(["noop"], ["none"])]) for pid in ("x", "y", "z")]
        storage = SyncStorage(roles=[], policies=policies)
        subject = Subject(id="u", policy_ids=["x", "y", "z"])
        decision = await AccessEngine(storage=storage).evaluate(subject, "read", "doc:1")
        assert decision.trace.checked_policy_ids == ["x", "y", "z"]


# =============================================================================
# Combining Algorithms
# =============================================================================


class TestFirstMatch:
    """First matching statement decides."""

    @pytest.mark.asyncio
    async def test_allow_before_deny_grants(self) -> None:
        policy = Policy(id="p", statements=[allow(["write"], ["doc:1"]), deny(["write"], ["doc:1"])])
        engine = AccessEngine(storage=InMemoryStorage(policies=[policy]))
        subject = Subject(id="u", policy_ids=["p"])

        first = await engine.evaluate(subject, "write", "doc:1")
        second = await engine.evaluate(subject, "write", "doc:1")

        assert first.granted is True
        assert first == second

    @pytest.mark.asyncio
    async def test_stops_at_first_match(self) -> None:
        first = Policy(id="first", statements=[deny(["read"], ["doc:1"])])
        later = Policy(id="later", statements=[allow(["read"], ["doc:1"])])
        engine = AccessEngine(storage=InMemoryStorage(policies=[first, later]))
        decision = await engine.evaluate(Subject(id="u", policy_ids=["first", "later"]), "read", "doc:1")
        assert decision.reason == "Denied by policy first"
        assert decision.trace.checked_policy_ids == ["first"]

    @pytest.mark.asyncio
    async def test_matched_statement_in_trace(self) -> None:
        statement = Statement(sid="s1", effect=Effect.ALLOW, actions=["read"], resources=["doc:1"])
        engine = AccessEngine(storage=InMemoryStorage(policies=[Policy(id="p", statements=[statement])]))
        decision = await engine.evaluate(Subject(id="u", policy_ids=["p"]), "read", "doc:1")
        assert decision.trace.matched_statement == statement


class TestDenyOverrides:
    """Any matching Deny wins under DENY_OVERRIDES."""

    @pytest.fixture
    def engine(self) -> AccessEngine:
        permissive = Policy(id="permissive", statements=[allow(["write"], ["doc:1"])])
        locked = Policy(id="locked", statements=[deny(["write"], ["doc:1"])])
        readable = Policy(id="readable", statements=[allow(["read"], ["doc:1"])])
        return AccessEngine(
            storage=InMemoryStorage(policies=[permissive, locked, readable]),
            algorithm=CombiningAlgorithm.DENY_OVERRIDES,
        )

    @pytest.mark.asyncio
    async def test_later_deny_overrides_allow(self, engine: AccessEngine) -> None:
        subject = Subject(id="u", policy_ids=["permissive", "locked"])
        decision = await engine.evaluate(subject, "write", "doc:1")
        assert decision.granted is False
        assert decision.reason == "Denied by policy locked"

    @pytest.mark.asyncio
    async def test_allow_without_deny_grants(self, engine: AccessEngine) -> None:
        subject = Subject(id="u", policy_ids=["permissive", "locked", "readable"])
        decision = await engine.evaluate(subject, "read", "doc:1")
        assert decision.granted is True
        assert decision.reason == "Allowed by policy readable"
        assert decision.trace.checked_policy_ids == ["permissive", "locked", "readable"]

    @pytest.mark.asyncio
    async def test_no_match(self, engine: AccessEngine) -> None:
        decision = await engine.evaluate(Subject(id="u", policy_ids=["readable"]), "delete", "doc:1")
        assert decision.reason == NO_MATCH_REASON

    def test_algorithm_accepts_string(self) -> None:
        engine = AccessEngine(algorithm="deny_overrides")  # type: ignore[arg-type]
        assert engine.algorithm is CombiningAlgorithm.DENY_OVERRIDES


# =============================================================================
# Conditions
# =============================================================================


class TestConditions:
    """Conditions are ANDed and resolved through the registry."""

    def _engine(self, *conditions: Condition, operators=None) -> AccessEngine:
        policy = Policy(id="p", statements=[allow(["read"], ["doc:1"], *conditions)])
        return AccessEngine(storage=InMemoryStorage(policies=[policy]), operators=operators)

    @pytest.mark.asyncio
    async def test_and_semantics(self) -> None:
        engine = self._engine(
            Condition(operator="eq", key="dept", value="eng"),
            Condition(operator="gte", key="level", value=3),
        )
        subject = Subject(id="u", policy_ids=["p"])

        one_false = await engine.evaluate(subject, "read", "doc:1", {"dept": "eng", "level": 2})
        both_true = await engine.evaluate(subject, "read", "doc:1", {"dept": "eng", "level": 3})

        assert one_false.granted is False
        assert both_true.granted is True

    @pytest.mark.asyncio
    async def test_unknown_operator_fails_condition(self) -> None:
        engine = self._engine(Condition(operator="startswith", key="path", value="/srv"))
        decision = await engine.evaluate(Subject(id="u", policy_ids=["p"]), "read", "doc:1", {"path": "/srv/a"})
        assert decision.granted is False
        assert decision.reason == NO_MATCH_REASON

    @pytest.mark.asyncio
    async def test_custom_operator(self) -> None:
        registry = create_default_registry()
        registry.register("startswith", lambda key, value, ctx: str(ctx.get(key, "")).startswith(value))
        engine = self._engine(Condition(operator="startswith", key="path", value="/srv"), operators=registry)
        decision = await engine.evaluate(Subject(id="u", policy_ids=["p"]), "read", "doc:1", {"path": "/srv/a"})
        assert decision.granted is True

    @pytest.mark.asyncio
    async def test_async_custom_operator(self) -> None:
        async def ip_allowed(key, value, ctx) -> bool:
            await asyncio.sleep(0)
            return ctx.get(key) in value

        registry = create_default_registry()
        registry.register("ip_allowed", ip_allowed)
        engine = self._engine(Condition(operator="ip_allowed", key="ip", value=["10.0.0.1"]), operators=registry)
        decision = await engine.evaluate(Subject(id="u", policy_ids=["p"]), "read", "doc:1", {"ip": "10.0.0.1"})
        assert decision.granted is True

    @pytest.mark.asyncio
    async def test_raising_operator_denies(self) -> None:
        def broken(key, value, ctx) -> bool:
            raise KeyError("tenant")

        registry = create_default_registry()
        registry.register("broken", broken)
        engine = self._engine(Condition(operator="broken", key="k", value=1), operators=registry)
        decision = await engine.evaluate(Subject(id="u", policy_ids=["p"]), "read", "doc:1")
        assert decision.granted is False
        assert "broken" in decision.reason


# =============================================================================
# Fail-closed
# =============================================================================


class TestFailClosed:
    """Internal failures become denials, never exceptions."""

    @pytest.mark.asyncio
    async def test_missing_storage(self, reader: Subject) -> None:
        decision = await AccessEngine().evaluate(reader, "read", "doc:1")
        assert decision.granted is False
        assert "storage" in decision.reason.lower()

    @pytest.mark.asyncio
    async def test_storage_error_message_is_reason(self, reader: Subject) -> None:
        engine = AccessEngine(storage=FailingStorage(ConnectionError("connection refused")))
        decision = await engine.evaluate(reader, "read", "doc:1", {"ip": "1.2.3.4"})
        assert decision.granted is False
        assert decision.reason == "connection refused"
        assert decision.trace.checked_policy_ids == []
        assert decision.context == {"ip": "1.2.3.4"}

    @pytest.mark.asyncio
    async def test_invalid_subject_denies(self) -> None:
        decision = await AccessEngine(storage=InMemoryStorage()).evaluate({"roleIds": []}, "read", "doc:1")
        assert decision.granted is False
        assert decision.reason


# =============================================================================
# Subjects, Storage Flavors and Sync API
# =============================================================================


class TestInputs:
    """Accepted subject forms and storage flavors."""

    @pytest.mark.asyncio
    async def test_dict_subject(self, storage: InMemoryStorage) -> None:
        decision = await AccessEngine(storage=storage).evaluate(
            {"id": "u1", "roleIds": ["r1"]}, "read", "doc:1"
        )
        assert decision.granted is True

    @pytest.mark.asyncio
    async def test_sync_storage(self, read_policy: Policy, reader_role: Role, reader: Subject) -> None:
        storage = SyncStorage(roles=[reader_role], policies=[read_policy])
        decision = await AccessEngine(storage=storage).evaluate(reader, "read", "doc:1")
        assert decision.granted is True
        assert storage.calls == [
            ("get_policies", []),
            ("get_roles", ["r1"]),
            ("get_policies", ["p1"]),
        ]

    @pytest.mark.asyncio
    async def test_merge_subject_attributes(self, storage: InMemoryStorage) -> None:
        subject = Subject(id="u", policy_ids=["p3"], attributes={"owner": "u1", "dept": "eng"})
        plain = AccessEngine(storage=storage)
        merging = AccessEngine(storage=storage, merge_subject_attributes=True)

        assert (await plain.evaluate(subject, "edit", "doc:1")).granted is False
        merged = await merging.evaluate(subject, "edit", "doc:1")
        assert merged.granted is True
        assert merged.context == {"owner": "u1", "dept": "eng"}

    @pytest.mark.asyncio
    async def test_request_context_wins_over_attributes(self, storage: InMemoryStorage) -> None:
        subject = Subject(id="u", policy_ids=["p3"], attributes={"owner": "u1"})
        engine = AccessEngine(storage=storage, merge_subject_attributes=True)
        decision = await engine.evaluate(subject, "edit", "doc:1", {"owner": "u2"})
        assert decision.granted is False

    @pytest.mark.asyncio
    async def test_is_allowed(self, storage: InMemoryStorage, reader: Subject) -> None:
        engine = AccessEngine(storage=storage)
        assert await engine.is_allowed(reader, "read", "doc:1") is True
        assert await engine.is_allowed(reader, "write", "doc:1") is False

    @pytest.mark.asyncio
    async def test_concurrent_evaluations(self, storage: InMemoryStorage, reader: Subject) -> None:
        engine = AccessEngine(storage=storage)
        decisions = await asyncio.gather(
            *(engine.evaluate(reader, action, "doc:1") for action in ["read", "write"] * 10)
        )
        assert [d.granted for d in decisions] == [True, False] * 10


class TestSyncApi:
    """evaluate_sync outside an event loop."""

    def test_evaluate_sync(self, storage: InMemoryStorage, reader: Subject) -> None:
        decision = AccessEngine(storage=storage).evaluate_sync(reader, "read", "doc:1")
        assert isinstance(decision, Decision)
        assert decision.granted is True

    @pytest.mark.asyncio
    async def test_evaluate_sync_inside_loop_raises(self, storage: InMemoryStorage, reader: Subject) -> None:
        with pytest.raises(RuntimeError):
            AccessEngine(storage=storage).evaluate_sync(reader, "read", "doc:1")
