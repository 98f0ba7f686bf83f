"""
Access control decorator for plain callables.

Usage:
    from iamkit import access_control

    @access_control(engine, "read", "doc:1")
    def read_doc(subject: Subject):
        ...

    @access_control(
        engine,
        "delete",
        lambda args: f"doc:{args['doc_id']}",
        context=lambda args: {"owner": args["owner"]},
    )
    async def delete_doc(subject: Subject, doc_id: str, owner: str):
        ...

The wrapped callable's arguments are bound to its signature; the subject
is read from the parameter named by ``subject_arg``. ``resource`` and
``context`` may be fixed values or callables receiving the bound
arguments as a dict.
"""

import inspect
from collections.abc import Callable, Mapping
from functools import wraps
from typing import Any

from iamkit.engine import AccessEngine
from iamkit.errors import AccessDeniedError
from iamkit.schema import Decision


def _resolve(value: Any, arguments: dict[str, Any]) -> Any:
    return value(arguments) if callable(value) else value


def access_control(
    engine: AccessEngine,
    action: str,
    resource: str | Callable[[dict[str, Any]], str],
    context: Mapping[str, Any] | Callable[[dict[str, Any]], Mapping[str, Any]] | None = None,
    subject_arg: str = "subject",
) -> Callable:
    """
    Decorator that evaluates access before calling the wrapped function.

    Args:
        engine: Engine used for evaluation
        action: The action being performed
        resource: Resource id, or a callable computing it from the arguments
        context: Context map, or a callable computing it from the arguments
        subject_arg: Name of the parameter holding the Subject

    Raises:
        AccessDeniedError: When the engine denies access (at call time)
        TypeError: If the wrapped function has no parameter named subject_arg
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)
        if subject_arg not in signature.parameters:
            raise TypeError(f"{func.__qualname__} has no parameter named '{subject_arg}'")

        def request_for(args: tuple, kwargs: dict) -> tuple[Any, str, dict[str, Any]]:
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            arguments = dict(bound.arguments)
            return (
                arguments[subject_arg],
                _resolve(resource, arguments),
                dict(_resolve(context, arguments) or {}),
            )

        def enforce(decision: Decision, target: str) -> None:
            if not decision.granted:
                raise AccessDeniedError(action=action, resource=target, decision=decision)

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                subject, target, ctx = request_for(args, kwargs)
                enforce(await engine.evaluate(subject, action, target, ctx), target)
                return await func(*args, **kwargs)

            return async_wrapper

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            subject, target, ctx = request_for(args, kwargs)
            enforce(engine.evaluate_sync(subject, action, target, ctx), target)
            return func(*args, **kwargs)

        return wrapper

    return decorator
