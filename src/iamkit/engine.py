"""
Decision engine for iamkit.

The engine answers one question: may this subject perform this action
on this resource, given this context? It is deny-by-default and
fail-closed: every internal failure becomes a denied Decision, so the
caller always receives a Decision and never an exception.

Design Principles:
    - Deny-by-default: no matching statement means deny
    - Fail-closed: storage, operator and hook failures deny with a reason
    - Predictable: policies are evaluated in a fixed, documented order
    - Auditable: every decision carries the policies it inspected

How it works:
    1. Fetch the subject's direct policies and roles from storage
    2. Fetch the policies attached to the resolved roles
    3. Order policies: direct first, then per role, deduplicated by id
    4. Walk statements in order; the first match decides (first-match-wins)
    5. No match at all: deny with "No matching policy"

Concurrency:
    evaluate() holds no state between calls. Concurrent evaluations may
    share one engine, registry and storage as long as the storage
    backend tolerates concurrent reads.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from iamkit.conditions import ConditionOperatorRegistry, create_default_registry
from iamkit.errors import (
    HookError,
    IAMError,
    OperatorError,
    StorageNotConfiguredError,
    StorageReadError,
    error_reason,
)
from iamkit.helpers import maybe_await, run_sync
from iamkit.hooks import DecisionHooks
from iamkit.schema import (
    AccessRequest,
    CombiningAlgorithm,
    Condition,
    Decision,
    Effect,
    Policy,
    Role,
    Statement,
    Subject,
)

logger = logging.getLogger("iamkit.engine")

NO_MATCH_REASON = "No matching policy"


def _unique(ids: Iterable[str]) -> list[str]:
    """Deduplicate ids keeping the first occurrence's position."""
    return list(dict.fromkeys(ids))


class AccessEngine:
    """
    Evaluates access requests against statement-based policies.

    Usage:
        engine = AccessEngine(storage=InMemoryStorage(roles=[...], policies=[...]))
        decision = await engine.evaluate(subject, "read", "doc:1", {"owner": "u1"})
        if decision.granted:
            ...

    Attributes:
        storage: Backend used to resolve roles and policies
        operators: Condition operator registry
        hooks: Instrumentation hooks
        algorithm: How matching statements combine into a decision
        merge_subject_attributes: Overlay request context on subject attributes
    """

    def __init__(
        self,
        storage: Any = None,
        operators: ConditionOperatorRegistry | None = None,
        hooks: DecisionHooks | None = None,
        algorithm: CombiningAlgorithm = CombiningAlgorithm.FIRST_MATCH,
        merge_subject_attributes: bool = False,
    ) -> None:
        """
        Initialize the engine.

        Args:
            storage: Storage backend exposing get_policies(ids) and get_roles(ids).
                     Without one, every evaluation is denied.
            operators: Operator registry (defaults to the built-in operators)
            hooks: Instrumentation hooks (defaults to no-op hooks)
            algorithm: Combining algorithm (defaults to first-match-wins)
            merge_subject_attributes: If True, the evaluation context is the
                subject's attributes overlaid with the request context
        """
        self.storage = storage
        self.operators = operators if operators is not None else create_default_registry()
        self.hooks = hooks if hooks is not None else DecisionHooks()
        self.algorithm = CombiningAlgorithm(algorithm)
        self.merge_subject_attributes = merge_subject_attributes

    @classmethod
    def from_settings(
        cls,
        storage: Any,
        settings: Any = None,
        **kwargs: Any,
    ) -> "AccessEngine":
        """
        Build an engine from IAMSettings.

        Args:
            storage: Storage backend
            settings: IAMSettings instance (loaded from the environment if None)
            **kwargs: Extra constructor arguments (operators, hooks)
        """
        if settings is None:
            from iamkit.config import load_settings

            settings = load_settings()

        return cls(
            storage=storage,
            algorithm=settings.algorithm,
            merge_subject_attributes=settings.merge_subject_attributes,
            **kwargs,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def evaluate(
        self,
        subject: Subject | Mapping[str, Any],
        action: str,
        resource: str,
        context: Mapping[str, Any] | None = None,
    ) -> Decision:
        """
        Evaluate an access request.

        Args:
            subject: The requesting subject (a Subject or its dict form)
            action: The requested action (e.g., "read")
            resource: The target resource (e.g., "doc:1")
            context: Request attributes consulted by conditions

        Returns:
            Decision with granted flag and evaluation trace. Never raises.
        """
        eval_context: dict[str, Any] = {}
        decision: Decision | None = None
        error: Exception | None = None

        try:
            eval_context = dict(context or {})
            if not isinstance(subject, Subject):
                subject = Subject.model_validate(subject)
            if self.merge_subject_attributes:
                eval_context = {**subject.attributes, **eval_context}

            request = AccessRequest(
                subject=subject,
                action=action,
                resource=resource,
                context=eval_context,
            )
            logger.debug(
                "evaluating subject=%s action=%s resource=%s",
                subject.id,
                action,
                resource,
            )

            await self._call_hook("on_before_decision", request)
            decision = await self._decide(request)
            await self._call_hook("on_decision", decision)
        except Exception as exc:
            error = exc
            decision = Decision.deny(error_reason(exc), context=eval_context)
            logger.warning("evaluation failed, denying: %s", decision.reason)
            await self._notify_error(exc)
        finally:
            await self._after_decision(decision, error)

        return decision

    def evaluate_sync(
        self,
        subject: Subject | Mapping[str, Any],
        action: str,
        resource: str,
        context: Mapping[str, Any] | None = None,
    ) -> Decision:
        """Synchronous wrapper around evaluate() for code without an event loop."""
        return run_sync(self.evaluate(subject, action, resource, context))

    async def is_allowed(
        self,
        subject: Subject | Mapping[str, Any],
        action: str,
        resource: str,
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        """Evaluate and return only the granted flag."""
        decision = await self.evaluate(subject, action, resource, context)
        return decision.granted

    # =========================================================================
    # Policy Resolution
    # =========================================================================

    async def _decide(self, request: AccessRequest) -> Decision:
        """Resolve the subject's policies and evaluate them."""
        if self.storage is None:
            raise StorageNotConfiguredError()

        subject = request.subject
        direct_ids = _unique(subject.policy_ids)
        role_ids = _unique(subject.role_ids)

        direct_policies: list[Policy] = await self._fetch("get_policies", direct_ids)
        roles: list[Role] = await self._fetch("get_roles", role_ids)

        roles_by_id: dict[str, Role] = {}
        for role in roles:
            if role.id in role_ids:
                roles_by_id.setdefault(role.id, role)

        role_policy_ids = _unique(
            policy_id
            for role_id in role_ids
            if role_id in roles_by_id
            for policy_id in roles_by_id[role_id].policy_ids
        )
        role_policies: list[Policy] = await self._fetch("get_policies", role_policy_ids)

        if not role_ids:
            await self._call_hook("on_role_not_found", None)
        for role_id in role_ids:
            if role_id not in roles_by_id:
                logger.warning("role not found: %s (subject=%s)", role_id, subject.id)
                await self._call_hook("on_role_not_found", role_id)

        policies = self._order_policies(
            direct_ids + role_policy_ids,
            [*direct_policies, *role_policies],
        )

        if self.algorithm is CombiningAlgorithm.DENY_OVERRIDES:
            return await self._deny_overrides(policies, request)
        return await self._first_match(policies, request)

    async def _fetch(self, method: str, ids: list[str]) -> list[Any]:
        """Call a batch storage method, reporting before/after to hooks."""
        await self._call_hook("on_storage_access", method, list(ids))
        try:
            result = await maybe_await(getattr(self.storage, method)(list(ids)))
        except IAMError:
            raise
        except Exception as exc:
            raise StorageReadError(
                operation=method,
                message=error_reason(exc),
                underlying_error=str(exc),
            ) from exc

        fetched = list(result or [])
        await self._call_hook("on_storage_access", method, list(ids), fetched)
        return fetched

    def _order_policies(self, order: list[str], fetched: list[Policy]) -> list[Policy]:
        """
        Arrange fetched policies in reference order, each id once.

        Storage may return policies in any order and may omit unknown ids.
        """
        by_id: dict[str, Policy] = {}
        for policy in fetched:
            by_id.setdefault(policy.id, policy)

        ordered = []
        for policy_id in _unique(order):
            policy = by_id.get(policy_id)
            if policy is None:
                logger.debug("policy not found: %s", policy_id)
                continue
            ordered.append(policy)
        return ordered

    # =========================================================================
    # Statement Evaluation
    # =========================================================================

    async def _first_match(self, policies: list[Policy], request: AccessRequest) -> Decision:
        """The first matching statement decides."""
        checked: list[str] = []
        for policy in policies:
            checked.append(policy.id)
            for statement in policy.statements:
                if await self._matches(statement, request):
                    return self._decision_for(policy, statement, checked, request)

        return self._no_match(checked, request)

    async def _deny_overrides(self, policies: list[Policy], request: AccessRequest) -> Decision:
        """Any matching Deny wins; otherwise the first matching Allow grants."""
        checked: list[str] = []
        first_allow: tuple[Policy, Statement] | None = None
        for policy in policies:
            checked.append(policy.id)
            for statement in policy.statements:
                if not await self._matches(statement, request):
                    continue
                if statement.effect is Effect.DENY:
                    return self._decision_for(policy, statement, checked, request)
                if first_allow is None:
                    first_allow = (policy, statement)

        if first_allow is not None:
            policy, statement = first_allow
            return self._decision_for(policy, statement, checked, request)
        return self._no_match(checked, request)

    def _decision_for(
        self,
        policy: Policy,
        statement: Statement,
        checked: list[str],
        request: AccessRequest,
    ) -> Decision:
        if statement.effect is Effect.ALLOW:
            logger.info(
                "access allowed: subject=%s action=%s resource=%s policy=%s",
                request.subject.id,
                request.action,
                request.resource,
                policy.id,
            )
            return Decision.allow(policy.id, checked, request.context, statement)

        logger.warning(
            "access denied: subject=%s action=%s resource=%s policy=%s",
            request.subject.id,
            request.action,
            request.resource,
            policy.id,
        )
        return Decision.deny(
            f"Denied by policy {policy.id}",
            request.context,
            checked,
            policy_id=policy.id,
            statement=statement,
        )

    def _no_match(self, checked: list[str], request: AccessRequest) -> Decision:
        logger.warning(
            "no matching policy: subject=%s action=%s resource=%s",
            request.subject.id,
            request.action,
            request.resource,
        )
        return Decision.deny(NO_MATCH_REASON, request.context, checked)

    async def _matches(self, statement: Statement, request: AccessRequest) -> bool:
        """Action, resource and every condition (ANDed, short-circuiting)."""
        if not statement.applies_to(request.action, request.resource):
            return False
        for condition in statement.conditions:
            if not await self._check_condition(condition, request.context):
                return False
        return True

    async def _check_condition(self, condition: Condition, context: dict[str, Any]) -> bool:
        """Run one condition through the operator registry."""
        operator = self.operators.get(condition.operator)
        if operator is None:
            logger.debug("unknown condition operator: %s", condition.operator)
            result = False
        else:
            try:
                result = bool(await maybe_await(operator(condition.key, condition.value, context)))
            except Exception as exc:
                raise OperatorError(
                    operator=condition.operator,
                    key=condition.key,
                    underlying_error=error_reason(exc),
                ) from exc

        logger.debug(
            "condition %s(%s, %r) -> %s",
            condition.operator,
            condition.key,
            condition.value,
            result,
        )
        await self._call_hook(
            "on_condition_check",
            condition.operator,
            condition.key,
            condition.value,
            context,
            result,
        )
        return result

    # =========================================================================
    # Hook Dispatch
    # =========================================================================

    async def _call_hook(self, name: str, *args: Any) -> None:
        """Invoke a main-path hook; failures become HookError."""
        try:
            await maybe_await(getattr(self.hooks, name)(*args))
        except Exception as exc:
            raise HookError(message=error_reason(exc), hook=name) from exc

    async def _notify_error(self, error: Exception) -> None:
        try:
            await maybe_await(self.hooks.on_error(error))
        except Exception:
            logger.exception("on_error hook failed")

    async def _after_decision(self, decision: Decision | None, error: Exception | None) -> None:
        try:
            await maybe_await(self.hooks.on_after_decision(decision, error))
        except Exception:
            logger.exception("on_after_decision hook failed")
