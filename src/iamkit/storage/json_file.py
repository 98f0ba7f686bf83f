"""
File-backed storage backend.

Persists the reference document shape

    {"users": [...], "roles": [...], "policies": [...]}

as JSON (or YAML, chosen by file extension). The file is read lazily on
first access and rewritten atomically after every mutation.

Behavior:
    - A missing file is an empty store; the first save creates it
    - A malformed file raises StorageReadError (the engine then denies)
    - Writes go to a temp file in the same directory, then os.replace()
"""

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from iamkit.errors import StorageReadError, StorageWriteError
from iamkit.schema import (
    Policy,
    Role,
    StoreDocument,
    Subject,
    dump_store_document,
    load_store_document_from_string,
)
from iamkit.storage.base import IAMStorage

logger = logging.getLogger("iamkit.storage")


def atomic_write(path: str | Path, data: str, *, encoding: str = "utf-8") -> None:
    """
    Write data atomically to path.

    Uses a temporary file in the same directory followed by os.replace().
    """
    directory = os.path.dirname(os.fspath(path)) or "."
    fd, tmp = tempfile.mkstemp(prefix=".iamkit.tmp.", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(data)
        os.replace(tmp, path)
    finally:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass


class JsonFileStorage(IAMStorage):
    """
    Storage backed by a single JSON or YAML document on disk.

    Usage:
        storage = JsonFileStorage("iam.json")
        engine = AccessEngine(storage=storage)

    Attributes:
        path: Location of the document
        fmt: "json" or "yaml", derived from the file extension
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.fmt = "yaml" if self.path.suffix.lower() in (".yaml", ".yml") else "json"
        self._users: dict[str, Subject] = {}
        self._roles: dict[str, Role] = {}
        self._policies: dict[str, Policy] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    # =========================================================================
    # Load / Save
    # =========================================================================

    def _read_document(self) -> StoreDocument:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("store file not found, starting empty: %s", self.path)
            return StoreDocument()
        except OSError as e:
            raise StorageReadError(
                operation="load",
                underlying_error=str(e),
            ) from e

        try:
            return load_store_document_from_string(content, self.fmt)
        except (json.JSONDecodeError, yaml.YAMLError, ValidationError) as e:
            raise StorageReadError(
                operation="load",
                message=f"Invalid store document {self.path}: {e}",
                underlying_error=str(e),
            ) from e

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        async with self._lock:
            if self._loaded:
                return
            document = await asyncio.to_thread(self._read_document)
            self._users = {u.id: u for u in document.users}
            self._roles = {r.id: r for r in document.roles}
            self._policies = {p.id: p for p in document.policies}
            self._loaded = True
            logger.debug("loaded store document from %s", self.path)

    def _document(self) -> StoreDocument:
        return StoreDocument(
            users=list(self._users.values()),
            roles=list(self._roles.values()),
            policies=list(self._policies.values()),
        )

    async def _save(self) -> None:
        content = dump_store_document(self._document(), self.fmt)
        try:
            await asyncio.to_thread(atomic_write, self.path, content)
        except OSError as e:
            raise StorageWriteError(
                operation="save",
                underlying_error=str(e),
            ) from e

    async def reload(self) -> None:
        """Drop the in-memory copy; the next access re-reads the file."""
        async with self._lock:
            self._loaded = False

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_user(self, user_id: str) -> Subject | None:
        await self._ensure_loaded()
        return self._users.get(user_id)

    async def get_users(self, ids: list[str]) -> list[Subject]:
        await self._ensure_loaded()
        return [self._users[i] for i in ids if i in self._users]

    async def iter_users(self) -> AsyncIterator[Subject]:
        await self._ensure_loaded()
        for user in list(self._users.values()):
            yield user

    async def get_role(self, role_id: str) -> Role | None:
        await self._ensure_loaded()
        return self._roles.get(role_id)

    async def get_roles(self, ids: list[str]) -> list[Role]:
        await self._ensure_loaded()
        return [self._roles[i] for i in ids if i in self._roles]

    async def iter_roles(self) -> AsyncIterator[Role]:
        await self._ensure_loaded()
        for role in list(self._roles.values()):
            yield role

    async def get_policy(self, policy_id: str) -> Policy | None:
        await self._ensure_loaded()
        return self._policies.get(policy_id)

    async def get_policies(self, ids: list[str]) -> list[Policy]:
        await self._ensure_loaded()
        return [self._policies[i] for i in ids if i in self._policies]

    async def iter_policies(self) -> AsyncIterator[Policy]:
        await self._ensure_loaded()
        for policy in list(self._policies.values()):
            yield policy

    # =========================================================================
    # Mutators
    # =========================================================================

    async def _commit(self, table_name: str, key: str, value: BaseModel | None) -> None:
        """
        Put (or, with value None, remove) key in a table and persist.

        A failed write restores the table, so memory never holds data the
        file does not.
        """
        await self._ensure_loaded()
        async with self._lock:
            table: dict[str, BaseModel] = getattr(self, table_name)
            previous = dict(table)
            if value is not None:
                table[key] = value
            elif table.pop(key, None) is None:
                return
            try:
                await self._save()
            except Exception:
                table.clear()
                table.update(previous)
                raise

    async def save_user(self, user: Subject) -> None:
        await self._commit("_users", user.id, user)

    async def save_role(self, role: Role) -> None:
        await self._commit("_roles", role.id, role)

    async def save_policy(self, policy: Policy) -> None:
        await self._commit("_policies", policy.id, policy)

    async def delete_user(self, user_id: str) -> None:
        await self._commit("_users", user_id, None)

    async def delete_role(self, role_id: str) -> None:
        await self._commit("_roles", role_id, None)

    async def delete_policy(self, policy_id: str) -> None:
        await self._commit("_policies", policy_id, None)

    def __repr__(self) -> str:
        return f"<JsonFileStorage: {self.path}>"
