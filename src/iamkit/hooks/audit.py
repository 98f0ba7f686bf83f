"""
Ready-made auditing hooks.

    - LoggingHooks: write every evaluation step to the "iamkit.audit" logger
    - AuditLogHooks: append every final decision to a SQLiteStorage audit table

Both correlate the request seen in on_before_decision with the final
decision through a context variable, so one instance can serve
concurrent evaluations.
"""

import logging
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from iamkit.hooks.base import DecisionHooks
from iamkit.schema import AccessRequest, Decision

if TYPE_CHECKING:
    from iamkit.storage.sqlite import SQLiteStorage

audit_logger = logging.getLogger("iamkit.audit")

CURRENT_REQUEST: ContextVar[AccessRequest | None] = ContextVar(
    "iamkit_current_request", default=None
)


class LoggingHooks(DecisionHooks):
    """Log each evaluation phase through the standard logging module."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or audit_logger

    def on_before_decision(self, request: AccessRequest) -> None:
        CURRENT_REQUEST.set(request)
        self.logger.debug(
            "decision requested: subject=%s action=%s resource=%s",
            request.subject.id,
            request.action,
            request.resource,
        )

    def on_storage_access(
        self,
        method: str,
        args: list[str],
        result: list[Any] | None = None,
    ) -> None:
        if result is None:
            self.logger.debug("storage %s(%s)", method, args)
        else:
            self.logger.debug("storage %s(%s) -> %d item(s)", method, args, len(result))

    def on_role_not_found(self, role_id: str | None) -> None:
        if role_id is None:
            self.logger.debug("subject has no roles")
        else:
            self.logger.warning("role not found: %s", role_id)

    def on_decision(self, decision: Decision) -> None:
        request = CURRENT_REQUEST.get()
        subject_id = request.subject.id if request else None
        if decision.granted:
            self.logger.info("granted subject=%s: %s", subject_id, decision.reason)
        else:
            self.logger.warning("denied subject=%s: %s", subject_id, decision.reason)

    def on_error(self, error: BaseException) -> None:
        self.logger.error("evaluation failed: %s", error)


class AuditLogHooks(DecisionHooks):
    """
    Append each final decision to a SQLite audit table.

    Usage:
        store = SQLiteStorage("iam.db")
        engine = AccessEngine(storage=store, hooks=AuditLogHooks(store))
    """

    def __init__(self, store: "SQLiteStorage") -> None:
        self.store = store

    def on_before_decision(self, request: AccessRequest) -> None:
        CURRENT_REQUEST.set(request)

    def on_after_decision(
        self,
        decision: Decision | None,
        error: BaseException | None,
    ) -> None:
        if decision is None:
            return
        request = CURRENT_REQUEST.get()
        self.store.record_decision(
            decision,
            subject_id=request.subject.id if request else None,
            action=request.action if request else None,
            resource=request.resource if request else None,
            error=str(error) if error is not None else None,
        )
        CURRENT_REQUEST.set(None)
