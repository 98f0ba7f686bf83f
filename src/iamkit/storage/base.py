"""
Storage contract for iamkit.

The engine resolves a subject's roles and policies through a storage
backend. During evaluation it only calls the batch lookups
get_policies() and get_roles(); single lookups, iteration and the
save/delete mutators exist for the management layer.

Contract:
    - Batch lookups return only the entities that exist; unknown ids
      are skipped, never an error
    - Order of batch results is not significant; the engine reorders
    - Methods may raise; the engine turns any failure into a deny
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from iamkit.schema import Policy, Role, Subject


class IAMStorage(ABC):
    """
    Abstract async storage backend for subjects, roles and policies.

    Subclasses must implement every lookup and mutator below.
    """

    # -- subjects -------------------------------------------------------------

    @abstractmethod
    async def get_user(self, user_id: str) -> Subject | None:
        """Return one subject, or None if unknown."""

    @abstractmethod
    async def get_users(self, ids: list[str]) -> list[Subject]:
        """Return the subjects that exist among ids."""

    @abstractmethod
    def iter_users(self) -> AsyncIterator[Subject]:
        """Lazily iterate over every stored subject."""

    # -- roles ----------------------------------------------------------------

    @abstractmethod
    async def get_role(self, role_id: str) -> Role | None:
        """Return one role, or None if unknown."""

    @abstractmethod
    async def get_roles(self, ids: list[str]) -> list[Role]:
        """Return the roles that exist among ids."""

    @abstractmethod
    def iter_roles(self) -> AsyncIterator[Role]:
        """Lazily iterate over every stored role."""

    # -- policies -------------------------------------------------------------

    @abstractmethod
    async def get_policy(self, policy_id: str) -> Policy | None:
        """Return one policy, or None if unknown."""

    @abstractmethod
    async def get_policies(self, ids: list[str]) -> list[Policy]:
        """Return the policies that exist among ids."""

    @abstractmethod
    def iter_policies(self) -> AsyncIterator[Policy]:
        """Lazily iterate over every stored policy."""

    # -- mutators -------------------------------------------------------------

    @abstractmethod
    async def save_user(self, user: Subject) -> None:
        """Insert or replace a subject."""

    @abstractmethod
    async def save_role(self, role: Role) -> None:
        """Insert or replace a role."""

    @abstractmethod
    async def save_policy(self, policy: Policy) -> None:
        """Insert or replace a policy."""

    @abstractmethod
    async def delete_user(self, user_id: str) -> None:
        """Delete a subject; unknown ids are ignored."""

    @abstractmethod
    async def delete_role(self, role_id: str) -> None:
        """Delete a role; unknown ids are ignored."""

    @abstractmethod
    async def delete_policy(self, policy_id: str) -> None:
        """Delete a policy; unknown ids are ignored."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
