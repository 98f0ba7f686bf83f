"""
In-memory storage backend.

Dict-backed, insertion-ordered, process-local. Suited to tests,
examples and small static policy sets loaded at startup.
"""

import logging
from collections.abc import AsyncIterator, Iterable

from iamkit.schema import Policy, Role, StoreDocument, Subject
from iamkit.storage.base import IAMStorage

logger = logging.getLogger("iamkit.storage")


class InMemoryStorage(IAMStorage):
    """
    Storage backed by three dicts keyed by id.

    Usage:
        storage = InMemoryStorage(
            users=[Subject(id="u1", role_ids=["r1"])],
            roles=[Role(id="r1", name="reader", policy_ids=["p1"])],
            policies=[policy],
        )
    """

    def __init__(
        self,
        users: Iterable[Subject] = (),
        roles: Iterable[Role] = (),
        policies: Iterable[Policy] = (),
    ) -> None:
        self._users: dict[str, Subject] = {u.id: u for u in users}
        self._roles: dict[str, Role] = {r.id: r for r in roles}
        self._policies: dict[str, Policy] = {p.id: p for p in policies}
        logger.debug(
            "in-memory storage initialized: %d users, %d roles, %d policies",
            len(self._users),
            len(self._roles),
            len(self._policies),
        )

    @classmethod
    def from_document(cls, document: StoreDocument) -> "InMemoryStorage":
        """Build a storage from a StoreDocument."""
        return cls(users=document.users, roles=document.roles, policies=document.policies)

    def to_document(self) -> StoreDocument:
        """Snapshot the current contents as a StoreDocument."""
        return StoreDocument(
            users=list(self._users.values()),
            roles=list(self._roles.values()),
            policies=list(self._policies.values()),
        )

    async def get_user(self, user_id: str) -> Subject | None:
        return self._users.get(user_id)

    async def get_users(self, ids: list[str]) -> list[Subject]:
        return [self._users[i] for i in ids if i in self._users]

    async def iter_users(self) -> AsyncIterator[Subject]:
        for user in list(self._users.values()):
            yield user

    async def get_role(self, role_id: str) -> Role | None:
        return self._roles.get(role_id)

    async def get_roles(self, ids: list[str]) -> list[Role]:
        return [self._roles[i] for i in ids if i in self._roles]

    async def iter_roles(self) -> AsyncIterator[Role]:
        for role in list(self._roles.values()):
            yield role

    async def get_policy(self, policy_id: str) -> Policy | None:
        return self._policies.get(policy_id)

    async def get_policies(self, ids: list[str]) -> list[Policy]:
        return [self._policies[i] for i in ids if i in self._policies]

    async def iter_policies(self) -> AsyncIterator[Policy]:
        for policy in list(self._policies.values()):
            yield policy

    async def save_user(self, user: Subject) -> None:
        self._users[user.id] = user

    async def save_role(self, role: Role) -> None:
        self._roles[role.id] = role

    async def save_policy(self, policy: Policy) -> None:
        self._policies[policy.id] = policy

    async def delete_user(self, user_id: str) -> None:
        self._users.pop(user_id, None)

    async def delete_role(self, role_id: str) -> None:
        self._roles.pop(role_id, None)

    async def delete_policy(self, policy_id: str) -> None:
        self._policies.pop(policy_id, None)

    def __repr__(self) -> str:
        return (
            f"<InMemoryStorage: {len(self._users)} users, "
            f"{len(self._roles)} roles, {len(self._policies)} policies>"
        )
