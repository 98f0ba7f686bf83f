"""
iamkit - deny-by-default access decisions from statement-based policies.

Subjects hold roles and direct policies; roles bundle policies; policies
hold Allow/Deny statements with conditions over the request context.
The engine returns a Decision with an evaluation trace and never raises.

Example usage:
    engine = AccessEngine(storage=InMemoryStorage(roles=roles, policies=policies))
    decision = await engine.evaluate(subject, "read", "doc:1", {"owner": "u1"})

    $ iamkit check store.yaml --user alice --action read --resource doc:1
"""

__version__ = "0.1.0"
__author__ = "iamkit Contributors"

from iamkit.assignment import assign_role, attach_policy, detach_policy, unassign_role
from iamkit.conditions import ConditionOperatorRegistry, create_default_registry
from iamkit.config import IAMSettings, configure_logging, load_settings
from iamkit.decorators import access_control
from iamkit.engine import AccessEngine
from iamkit.errors import (
    AccessDeniedError,
    ConfigError,
    HookError,
    IAMError,
    OperatorError,
    StorageError,
    StorageNotConfiguredError,
)
from iamkit.hooks import CallbackHooks, CompositeHooks, DecisionHooks
from iamkit.schema import (
    AccessRequest,
    CombiningAlgorithm,
    Condition,
    Decision,
    Effect,
    EvaluationTrace,
    Policy,
    Role,
    Statement,
    StoreDocument,
    Subject,
)
from iamkit.serialization import (
    deserialize_policy,
    deserialize_role,
    deserialize_subject,
    serialize_policy,
    serialize_role,
    serialize_subject,
)
from iamkit.storage import InMemoryStorage, JsonFileStorage, SQLiteStorage
from iamkit.validation import validate_store

__all__ = [
    "__version__",
    "__author__",
    "AccessDeniedError",
    "AccessEngine",
    "AccessRequest",
    "CallbackHooks",
    "CombiningAlgorithm",
    "CompositeHooks",
    "Condition",
    "ConditionOperatorRegistry",
    "ConfigError",
    "Decision",
    "DecisionHooks",
    "Effect",
    "EvaluationTrace",
    "HookError",
    "IAMError",
    "IAMSettings",
    "InMemoryStorage",
    "JsonFileStorage",
    "OperatorError",
    "Policy",
    "Role",
    "SQLiteStorage",
    "Statement",
    "StorageError",
    "StorageNotConfiguredError",
    "StoreDocument",
    "Subject",
    "access_control",
    "assign_role",
    "attach_policy",
    "configure_logging",
    "create_default_registry",
    "detach_policy",
    "deserialize_policy",
    "deserialize_role",
    "deserialize_subject",
    "load_settings",
    "serialize_policy",
    "serialize_role",
    "serialize_subject",
    "unassign_role",
    "validate_store",
]
