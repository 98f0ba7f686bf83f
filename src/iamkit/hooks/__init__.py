"""
Instrumentation hooks for the decision engine.

Hooks let auditing, metrics and debugging code observe each evaluation
without being able to grant access. Subclass DecisionHooks and override
the callbacks you need, or assemble hooks from plain callables with
CallbackHooks.
"""

from iamkit.hooks.audit import AuditLogHooks, LoggingHooks
from iamkit.hooks.base import HOOK_NAMES, CallbackHooks, CompositeHooks, DecisionHooks

__all__ = [
    "AuditLogHooks",
    "CallbackHooks",
    "CompositeHooks",
    "DecisionHooks",
    "HOOK_NAMES",
    "LoggingHooks",
]
