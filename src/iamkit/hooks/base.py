"""
Instrumentation hook interface for the decision engine.

Hooks observe an evaluation; they never decide it. The engine invokes
every hook method unconditionally, so the base class provides no-op
defaults and subclasses override only what they need. Any method may
be a coroutine function.

Call order for one evaluation:
    on_before_decision
    on_storage_access (before/after pairs, one per storage call)
    on_role_not_found
    on_condition_check (in statement-evaluation order)
    on_decision or on_error
    on_after_decision (always, exactly once)

A hook raising on the main path turns the decision into a deny carrying
the hook's message. Errors from on_after_decision and on_error are
logged and swallowed.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from iamkit.helpers import maybe_await

if TYPE_CHECKING:
    from iamkit.schema import AccessRequest, Decision


class DecisionHooks:
    """
    Base class for engine hooks. Every method is a no-op.

    Example:
        class CountingHooks(DecisionHooks):
            def __init__(self) -> None:
                self.denied = 0

            def on_decision(self, decision: Decision) -> None:
                if not decision.granted:
                    self.denied += 1
    """

    def on_before_decision(self, request: "AccessRequest") -> Any:
        """Called once per evaluation, before any storage access."""

    def on_storage_access(
        self,
        method: str,
        args: list[str],
        result: list[Any] | None = None,
    ) -> Any:
        """
        Called before (result=None) and after (result=fetched list) each storage call.

        Args:
            method: Storage method name ("get_policies" or "get_roles")
            args: The ids passed to the storage method
            result: The fetched entities, on the second call only
        """

    def on_role_not_found(self, role_id: str | None) -> Any:
        """
        Called once per referenced role id that storage could not resolve.

        Called once with None when the subject references no roles at all.
        """

    def on_condition_check(
        self,
        operator: str,
        key: str,
        value: Any,
        context: dict[str, Any],
        result: bool,
    ) -> Any:
        """Called after each condition is evaluated."""

    def on_decision(self, decision: "Decision") -> Any:
        """Called with the final decision on the success path only."""

    def on_after_decision(
        self,
        decision: "Decision | None",
        error: BaseException | None,
    ) -> Any:
        """Called exactly once per evaluation, on every path."""

    def on_error(self, error: BaseException) -> Any:
        """Called once if evaluation failed."""


HOOK_NAMES = (
    "on_before_decision",
    "on_storage_access",
    "on_role_not_found",
    "on_condition_check",
    "on_decision",
    "on_after_decision",
    "on_error",
)


class CallbackHooks(DecisionHooks):
    """
    Hooks assembled from independently supplied callables.

    Usage:
        hooks = CallbackHooks(
            on_decision=lambda d: print(d.granted),
            on_role_not_found=missing.append,
        )
    """

    def __init__(self, **callbacks: Callable[..., Any] | None) -> None:
        unknown = set(callbacks) - set(HOOK_NAMES)
        if unknown:
            msg = f"Unknown hook name(s): {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        self._callbacks = {name: cb for name, cb in callbacks.items() if cb is not None}

    def _call(self, name: str, *args: Any) -> Any:
        callback = self._callbacks.get(name)
        if callback is None:
            return None
        return callback(*args)

    def on_before_decision(self, request: "AccessRequest") -> Any:
        return self._call("on_before_decision", request)

    def on_storage_access(
        self,
        method: str,
        args: list[str],
        result: list[Any] | None = None,
    ) -> Any:
        if result is None:
            return self._call("on_storage_access", method, args)
        return self._call("on_storage_access", method, args, result)

    def on_role_not_found(self, role_id: str | None) -> Any:
        return self._call("on_role_not_found", role_id)

    def on_condition_check(
        self,
        operator: str,
        key: str,
        value: Any,
        context: dict[str, Any],
        result: bool,
    ) -> Any:
        return self._call("on_condition_check", operator, key, value, context, result)

    def on_decision(self, decision: "Decision") -> Any:
        return self._call("on_decision", decision)

    def on_after_decision(
        self,
        decision: "Decision | None",
        error: BaseException | None,
    ) -> Any:
        return self._call("on_after_decision", decision, error)

    def on_error(self, error: BaseException) -> Any:
        return self._call("on_error", error)

    def __repr__(self) -> str:
        return f"<CallbackHooks: [{', '.join(sorted(self._callbacks))}]>"


class CompositeHooks(DecisionHooks):
    """Fans every hook call out to several hook objects, in order."""

    def __init__(self, *hooks: DecisionHooks) -> None:
        self.hooks = list(hooks)

    async def on_before_decision(self, request: "AccessRequest") -> None:
        for hook in self.hooks:
            await maybe_await(hook.on_before_decision(request))

    async def on_storage_access(
        self,
        method: str,
        args: list[str],
        result: list[Any] | None = None,
    ) -> None:
        for hook in self.hooks:
            await maybe_await(hook.on_storage_access(method, args, result))

    async def on_role_not_found(self, role_id: str | None) -> None:
        for hook in self.hooks:
            await maybe_await(hook.on_role_not_found(role_id))

    async def on_condition_check(
        self,
        operator: str,
        key: str,
        value: Any,
        context: dict[str, Any],
        result: bool,
    ) -> None:
        for hook in self.hooks:
            await maybe_await(hook.on_condition_check(operator, key, value, context, result))

    async def on_decision(self, decision: "Decision") -> None:
        for hook in self.hooks:
            await maybe_await(hook.on_decision(decision))

    async def on_after_decision(
        self,
        decision: "Decision | None",
        error: BaseException | None,
    ) -> None:
        for hook in self.hooks:
            await maybe_await(hook.on_after_decision(decision, error))

    async def on_error(self, error: BaseException) -> None:
        for hook in self.hooks:
            await maybe_await(hook.on_error(error))
