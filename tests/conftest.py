"""
Pytest configuration and fixtures for iamkit tests.

This module provides shared fixtures used across unit and integration
tests.
"""

import json
import logging
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from iamkit.schema import Condition, Effect, Policy, Role, Statement, Subject
from iamkit.storage import InMemoryStorage


@pytest.fixture(autouse=True)
def package_logger() -> Generator[logging.Logger, None, None]:
    """Restore the "iamkit" logger after tests that reconfigure it."""
    logger = logging.getLogger("iamkit")
    saved_level, saved_handlers = logger.level, list(logger.handlers)
    yield logger
    logger.setLevel(saved_level)
    logger.handlers[:] = saved_handlers


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def read_policy() -> Policy:
    """p1: Allow read doc:1."""
    return Policy(
        id="p1",
        name="read-doc",
        statements=[Statement(effect=Effect.ALLOW, actions=["read"], resources=["doc:1"])],
    )


@pytest.fixture
def deny_write_policy() -> Policy:
    """p2: Deny write doc:1."""
    return Policy(
        id="p2",
        name="no-write",
        statements=[Statement(effect=Effect.DENY, actions=["write"], resources=["doc:1"])],
    )


@pytest.fixture
def owner_policy() -> Policy:
    """p3: Allow edit doc:1 when owner == u1."""
    return Policy(
        id="p3",
        name="owner-edit",
        statements=[
            Statement(
                sid="owner",
                effect=Effect.ALLOW,
                actions=["edit"],
                resources=["doc:1"],
                conditions=[Condition(operator="eq", key="owner", value="u1")],
            )
        ],
    )


@pytest.fixture
def reader_role() -> Role:
    return Role(id="r1", name="reader", policy_ids=["p1"])


@pytest.fixture
def reader(reader_role: Role) -> Subject:
    """u1 holding role r1."""
    return Subject(id="u1", role_ids=[reader_role.id])


@pytest.fixture
def storage(
    read_policy: Policy,
    deny_write_policy: Policy,
    owner_policy: Policy,
    reader_role: Role,
    reader: Subject,
) -> InMemoryStorage:
    """In-memory storage holding p1-p3, r1 and u1."""
    return InMemoryStorage(
        users=[reader],
        roles=[reader_role],
        policies=[read_policy, deny_write_policy, owner_policy],
    )


@pytest.fixture
def store_document_dict() -> dict:
    """A store document in its persisted (camelCase) shape."""
    return {
        "users": [
            {"id": "alice", "roleIds": ["editor"], "policyIds": []},
            {"id": "bob", "roleIds": [], "policyIds": ["read-only"]},
        ],
        "roles": [
            {"id": "editor", "name": "Editor", "policyIds": ["read-only", "owner-write"]},
        ],
        "policies": [
            {
                "id": "read-only",
                "name": "Read only",
                "statements": [
                    {"effect": "Allow", "actions": ["read"], "resources": ["doc:1", "doc:2"]},
                ],
            },
            {
                "id": "owner-write",
                "name": "Owner write",
                "statements": [
                    {
                        "sid": "owner",
                        "effect": "Allow",
                        "actions": ["write"],
                        "resources": ["doc:1"],
                        "conditions": [{"operator": "eq", "key": "owner", "value": "alice"}],
                    },
                    {"effect": "Deny", "actions": ["write"], "resources": ["doc:1"]},
                ],
            },
        ],
    }


@pytest.fixture
def store_json_file(temp_dir: Path, store_document_dict: dict) -> Path:
    """Write the sample store document to a JSON file."""
    path = temp_dir / "store.json"
    path.write_text(json.dumps(store_document_dict))
    return path


@pytest.fixture
def store_yaml() -> str:
    """The sample store document as YAML."""
    return """
users:
  - id: alice
    roleIds: [editor]
roles:
  - id: editor
    name: Editor
    policyIds: [read-only]
policies:
  - id: read-only
    name: Read only
    statements:
      - effect: Allow
        actions: [read]
        resources: [doc:1]
"""
