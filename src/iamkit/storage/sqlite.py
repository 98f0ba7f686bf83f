"""
SQLite storage backend for iamkit.

Stores subjects, roles and policies as one JSON document per row, plus
an append-only audit table of decisions. Everything lives in a single
.db file.

Tables:
    - users / roles / policies: id primary key, JSON document
    - decisions: one row per recorded evaluation outcome

Design Principles:
    - Documents are validated through the pydantic models on read
    - Iteration follows insertion order (rowid); updates keep position
    - The decisions table is append-only
    - Async methods run queries in a worker thread; one lock guards the
      shared connection
"""

import asyncio
import json
import sqlite3
import threading
import uuid
from collections.abc import AsyncIterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator, TypeVar

from pydantic import BaseModel, ValidationError

from iamkit.errors import StorageConnectionError, StorageReadError, StorageWriteError
from iamkit.schema import Decision, Policy, Role, Subject
from iamkit.storage.base import IAMStorage

M = TypeVar("M", bound=BaseModel)

# Schema version for migrations
SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    doc_json TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS roles (
    id TEXT PRIMARY KEY,
    doc_json TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS policies (
    id TEXT PRIMARY KEY,
    doc_json TEXT NOT NULL
);

-- Decisions table: append-only audit log
CREATE TABLE IF NOT EXISTS decisions (
    decision_id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    subject_id TEXT,
    action TEXT,
    resource TEXT,
    granted INTEGER NOT NULL,
    reason TEXT,
    checked_policy_ids_json TEXT NOT NULL,
    context_json TEXT NOT NULL,
    error TEXT
);

CREATE INDEX IF NOT EXISTS idx_decisions_created_at ON decisions(created_at);
CREATE INDEX IF NOT EXISTS idx_decisions_subject_id ON decisions(subject_id);
"""


def generate_id() -> str:
    """Generate a short unique ID for audit records."""
    return str(uuid.uuid4())[:8]


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


class SQLiteStorage(IAMStorage):
    """
    SQLite-backed storage with a decision audit log.

    Usage:
        with SQLiteStorage("iam.db") as storage:
            await storage.save_policy(policy)
            engine = AccessEngine(storage=storage)
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Open (and create if needed) the database.

        Args:
            db_path: Path to the SQLite file, or ":memory:"
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            raise StorageConnectionError(
                location=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            if cursor.fetchone() is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "SQLiteStorage":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Document Helpers
    # =========================================================================

    @contextmanager
    def _connection(self, operation: str) -> Generator[sqlite3.Connection, None, None]:
        """Hold the connection lock; async callers run these helpers in worker threads."""
        with self._lock:
            if self._conn is None:
                raise StorageConnectionError(
                    location=str(self.db_path),
                    operation=operation,
                    message="Database connection is closed",
                )
            yield self._conn

    def _get_one(self, table: str, model: type[M], doc_id: str) -> M | None:
        with self._connection(f"get_{table}") as conn:
            try:
                row = conn.execute(
                    f"SELECT doc_json FROM {table} WHERE id = ?",
                    (doc_id,),
                ).fetchone()
                if row is None:
                    return None
                return model.model_validate_json(row["doc_json"])
            except (sqlite3.Error, ValidationError) as e:
                raise StorageReadError(
                    operation=f"get_{table}",
                    underlying_error=str(e),
                ) from e

    def _get_many(self, table: str, model: type[M], ids: list[str]) -> list[M]:
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        with self._connection(f"get_{table}") as conn:
            try:
                cursor = conn.execute(
                    f"SELECT doc_json FROM {table} WHERE id IN ({placeholders}) ORDER BY rowid",
                    list(ids),
                )
                return [model.model_validate_json(row["doc_json"]) for row in cursor]
            except (sqlite3.Error, ValidationError) as e:
                raise StorageReadError(
                    operation=f"get_{table}",
                    underlying_error=str(e),
                ) from e

    def _all(self, table: str, model: type[M]) -> list[M]:
        with self._connection(f"iter_{table}") as conn:
            try:
                cursor = conn.execute(f"SELECT doc_json FROM {table} ORDER BY rowid")
                return [model.model_validate_json(row["doc_json"]) for row in cursor]
            except (sqlite3.Error, ValidationError) as e:
                raise StorageReadError(
                    operation=f"iter_{table}",
                    underlying_error=str(e),
                ) from e

    def _upsert(self, table: str, doc_id: str, document: BaseModel) -> None:
        with self._connection(f"save_{table}") as conn:
            try:
                conn.execute(
                    f"""
                    INSERT INTO {table} (id, doc_json) VALUES (?, ?)
                    ON CONFLICT(id) DO UPDATE SET doc_json = excluded.doc_json
                    """,
                    (doc_id, document.model_dump_json(by_alias=True)),
                )
                conn.commit()
            except sqlite3.Error as e:
                raise StorageWriteError(
                    operation=f"save_{table}",
                    underlying_error=str(e),
                ) from e

    def _delete(self, table: str, doc_id: str) -> None:
        with self._connection(f"delete_{table}") as conn:
            try:
                conn.execute(f"DELETE FROM {table} WHERE id = ?", (doc_id,))
                conn.commit()
            except sqlite3.Error as e:
                raise StorageWriteError(
                    operation=f"delete_{table}",
                    underlying_error=str(e),
                ) from e


    # =========================================================================
    # IAMStorage
    # =========================================================================

    async def get_user(self, user_id: str) -> Subject | None:
        return await asyncio.to_thread(self._get_one, "users", Subject, user_id)

    async def get_users(self, ids: list[str]) -> list[Subject]:
        return await asyncio.to_thread(self._get_many, "users", Subject, ids)

    async def iter_users(self) -> AsyncIterator[Subject]:
        for user in await asyncio.to_thread(self._all, "users", Subject):
            yield user

    async def get_role(self, role_id: str) -> Role | None:
        return await asyncio.to_thread(self._get_one, "roles", Role, role_id)

    async def get_roles(self, ids: list[str]) -> list[Role]:
        return await asyncio.to_thread(self._get_many, "roles", Role, ids)

    async def iter_roles(self) -> AsyncIterator[Role]:
        for role in await asyncio.to_thread(self._all, "roles", Role):
            yield role

    async def get_policy(self, policy_id: str) -> Policy | None:
        return await asyncio.to_thread(self._get_one, "policies", Policy, policy_id)

    async def get_policies(self, ids: list[str]) -> list[Policy]:
        return await asyncio.to_thread(self._get_many, "policies", Policy, ids)

    async def iter_policies(self) -> AsyncIterator[Policy]:
        for policy in await asyncio.to_thread(self._all, "policies", Policy):
            yield policy

    async def save_user(self, user: Subject) -> None:
        await asyncio.to_thread(self._upsert, "users", user.id, user)

    async def save_role(self, role: Role) -> None:
        await asyncio.to_thread(self._upsert, "roles", role.id, role)

    async def save_policy(self, policy: Policy) -> None:
        await asyncio.to_thread(self._upsert, "policies", policy.id, policy)

    async def delete_user(self, user_id: str) -> None:
        await asyncio.to_thread(self._delete, "users", user_id)

    async def delete_role(self, role_id: str) -> None:
        await asyncio.to_thread(self._delete, "roles", role_id)

    async def delete_policy(self, policy_id: str) -> None:
        await asyncio.to_thread(self._delete, "policies", policy_id)

    # =========================================================================
    # Decision Audit Log
    # =========================================================================

    def record_decision(
        self,
        decision: Decision,
        subject_id: str | None = None,
        action: str | None = None,
        resource: str | None = None,
        error: str | None = None,
    ) -> str:
        """
        Append a decision to the audit log.

        Returns:
            The generated decision_id
        """
        decision_id = generate_id()
        with self._connection("record_decision") as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO decisions (
                        decision_id, created_at, subject_id, action, resource,
                        granted, reason, checked_policy_ids_json, context_json, error
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        decision_id,
                        now_iso(),
                        subject_id,
                        action,
                        resource,
                        int(decision.granted),
                        decision.trace.reason,
                        json.dumps(decision.trace.checked_policy_ids),
                        json.dumps(decision.context, default=str),
                        error,
                    ),
                )
                conn.commit()
                return decision_id
            except sqlite3.Error as e:
                raise StorageWriteError(
                    operation="record_decision",
                    underlying_error=str(e),
                ) from e

    def list_decisions(
        self,
        limit: int = 100,
        subject_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        List recorded decisions, most recent first.

        Args:
            limit: Maximum number of rows to return
            subject_id: Only return decisions for this subject
        """
        query = "SELECT * FROM decisions"
        params: list[Any] = []
        if subject_id is not None:
            query += " WHERE subject_id = ?"
            params.append(subject_id)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        with self._connection("list_decisions") as conn:
            try:
                rows = conn.execute(query, params).fetchall()
            except sqlite3.Error as e:
                raise StorageReadError(
                    operation="list_decisions",
                    underlying_error=str(e),
                ) from e

        return [
            {
                "decision_id": row["decision_id"],
                "created_at": row["created_at"],
                "subject_id": row["subject_id"],
                "action": row["action"],
                "resource": row["resource"],
                "granted": bool(row["granted"]),
                "reason": row["reason"],
                "checked_policy_ids": json.loads(row["checked_policy_ids_json"]),
                "context": json.loads(row["context_json"]),
                "error": row["error"],
            }
            for row in rows
        ]

    def __repr__(self) -> str:
        return f"<SQLiteStorage: {self.db_path}>"
