"""
JSON serialization for policies, roles and subjects.

The wire form uses the camelCase keys of the store document (roleIds,
policyIds) and omits unset optional fields.
"""

from pydantic import BaseModel

from iamkit.schema import Policy, Role, Subject


def _dump(model: BaseModel, indent: int | None) -> str:
    return model.model_dump_json(by_alias=True, exclude_none=True, indent=indent)


def serialize_policy(policy: Policy, indent: int | None = None) -> str:
    return _dump(policy, indent)


def deserialize_policy(data: str | bytes) -> Policy:
    """
    Parse a policy from JSON.

    Raises:
        pydantic.ValidationError: If the JSON is malformed or doesn't match
    """
    return Policy.model_validate_json(data)


def serialize_role(role: Role, indent: int | None = None) -> str:
    return _dump(role, indent)


def deserialize_role(data: str | bytes) -> Role:
    return Role.model_validate_json(data)


def serialize_subject(subject: Subject, indent: int | None = None) -> str:
    return _dump(subject, indent)


def deserialize_subject(data: str | bytes) -> Subject:
    return Subject.model_validate_json(data)
