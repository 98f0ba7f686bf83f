"""
Subject assignment helpers.

Subjects are immutable, so every helper returns a new Subject and
leaves the original untouched. Order of existing references is
preserved; assigning an id that is already present is a no-op.
"""

from iamkit.schema import Subject


def _appended(ids: list[str], new_id: str) -> list[str]:
    if new_id in ids:
        return list(ids)
    return [*ids, new_id]


def _removed(ids: list[str], old_id: str) -> list[str]:
    return [i for i in ids if i != old_id]


def assign_role(subject: Subject, role_id: str) -> Subject:
    """Return a copy of subject with role_id appended to its roles."""
    return subject.model_copy(update={"role_ids": _appended(subject.role_ids, role_id)})


def unassign_role(subject: Subject, role_id: str) -> Subject:
    """Return a copy of subject without role_id."""
    return subject.model_copy(update={"role_ids": _removed(subject.role_ids, role_id)})


def attach_policy(subject: Subject, policy_id: str) -> Subject:
    """Return a copy of subject with policy_id appended to its direct policies."""
    return subject.model_copy(
        update={"policy_ids": _appended(subject.policy_ids, policy_id)}
    )


def detach_policy(subject: Subject, policy_id: str) -> Subject:
    """Return a copy of subject without the direct policy policy_id."""
    return subject.model_copy(
        update={"policy_ids": _removed(subject.policy_ids, policy_id)}
    )
