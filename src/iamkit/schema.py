"""
Schema definitions for iamkit.

This module defines the Pydantic models used throughout iamkit:
- Subject/Role/Policy/Statement/Condition: The entity model
- AccessRequest: What is being asked for
- Decision/EvaluationTrace: What the engine answered and why
- StoreDocument: The reference persisted shape (users, roles, policies)

Design Decisions:
    - Entities are immutable (frozen=True); the engine only reads them
    - Field names are snake_case; the camelCase keys of the reference
      JSON document (roleIds, policyIds) are accepted and emitted as aliases
    - Order of list fields is significant wherever the engine iterates them
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class Effect(str, Enum):
    """The effect a matching statement has on the decision."""

    ALLOW = "Allow"
    DENY = "Deny"


class CombiningAlgorithm(str, Enum):
    """
    How matching statements are combined into a decision.

    FIRST_MATCH stops at the first matching statement in evaluation order.
    DENY_OVERRIDES inspects every statement and lets any matching Deny win.
    """

    FIRST_MATCH = "first_match"
    DENY_OVERRIDES = "deny_overrides"


# =============================================================================
# Entity Models
# =============================================================================


class Condition(BaseModel):
    """
    A named predicate check against the request context.

    Attributes:
        operator: Name of a registered condition operator (e.g., "eq")
        key: Lookup key into the context map
        value: Operator-specific comparand
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    operator: str = Field(..., description="Registered operator name")
    key: str = Field(..., description="Context key to read")
    value: Any = Field(default=None, description="Operator-specific comparand")


class Statement(BaseModel):
    """
    An effect bound to a set of actions, a set of resources and conditions.

    Conditions are ANDed. Empty actions or resources are legal but can
    never match.

    Attributes:
        sid: Optional statement identifier
        effect: Allow or Deny
        actions: Actions this statement applies to
        resources: Resources this statement applies to
        conditions: Conditions that must all hold for a match
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    sid: str | None = Field(default=None, description="Optional statement id")
    effect: Effect = Field(..., description="Allow or Deny")
    actions: list[str] = Field(default_factory=list, description="Matched actions")
    resources: list[str] = Field(default_factory=list, description="Matched resources")
    conditions: list[Condition] = Field(
        default_factory=list,
        description="Conditions, all of which must hold",
    )

    def applies_to(self, action: str, resource: str) -> bool:
        """Check the action and resource clauses (conditions excluded)."""
        return action in self.actions and resource in self.resources


class Policy(BaseModel):
    """
    A named, ordered sequence of statements.

    Attributes:
        id: Unique policy identifier
        name: Human-readable name
        statements: Statements in evaluation order
        description: Optional description
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1, description="Unique policy identifier")
    name: str = Field(default="", description="Human-readable name")
    statements: list[Statement] = Field(
        default_factory=list,
        description="Statements in evaluation order",
    )
    description: str | None = Field(default=None, description="Optional description")


class Role(BaseModel):
    """
    A flat, named bundle of policy references.

    Roles never reference other roles.

    Attributes:
        id: Unique role identifier
        name: Human-readable name
        policy_ids: Attached policy ids in evaluation order
        description: Optional description
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    id: str = Field(..., min_length=1, description="Unique role identifier")
    name: str = Field(default="", description="Human-readable name")
    policy_ids: list[str] = Field(
        default_factory=list,
        alias="policyIds",
        description="Attached policy ids, in order",
    )
    description: str | None = Field(default=None, description="Optional description")


class Subject(BaseModel):
    """
    The principal requesting access.

    Attributes:
        id: Opaque subject identifier
        role_ids: Referenced role ids, in order (duplicates are meaningless)
        policy_ids: Directly attached policy ids, in order
        attributes: Free-form attributes, opaque to the engine
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    id: str = Field(..., min_length=1, description="Opaque subject identifier")
    role_ids: list[str] = Field(
        default_factory=list,
        alias="roleIds",
        description="Referenced role ids, in order",
    )
    policy_ids: list[str] = Field(
        default_factory=list,
        alias="policyIds",
        description="Directly attached policy ids, in order",
    )
    attributes: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form attributes",
    )


# =============================================================================
# Request / Decision Models
# =============================================================================


class AccessRequest(BaseModel):
    """A single evaluation request, as handed to on_before_decision."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    subject: Subject
    action: str
    resource: str
    context: dict[str, Any] = Field(default_factory=dict)


class EvaluationTrace(BaseModel):
    """
    Ordered record of what the engine inspected and why it decided.

    Attributes:
        checked_policy_ids: Policies visited, in order, once each
        reason: Why the final outcome was reached
        matched_policy_id: Policy holding the deciding statement
        matched_statement: The deciding statement
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    checked_policy_ids: list[str] = Field(default_factory=list)
    reason: str | None = None
    matched_policy_id: str | None = None
    matched_statement: Statement | None = None


class Decision(BaseModel):
    """
    The engine's answer: granted or denied, plus an evaluation trace.

    Attributes:
        granted: Whether access is permitted
        trace: How the engine got there
        context: The context map used for evaluation
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    granted: bool = Field(..., description="Whether access is permitted")
    trace: EvaluationTrace = Field(default_factory=EvaluationTrace)
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def reason(self) -> str | None:
        """Shortcut for trace.reason."""
        return self.trace.reason

    @classmethod
    def allow(
        cls,
        policy_id: str,
        checked: list[str],
        context: dict[str, Any],
        statement: Statement | None = None,
    ) -> "Decision":
        """Create a decision granted by the given policy."""
        return cls(
            granted=True,
            trace=EvaluationTrace(
                checked_policy_ids=list(checked),
                reason=f"Allowed by policy {policy_id}",
                matched_policy_id=policy_id,
                matched_statement=statement,
            ),
            context=context,
        )

    @classmethod
    def deny(
        cls,
        reason: str,
        context: dict[str, Any] | None = None,
        checked: list[str] | None = None,
        policy_id: str | None = None,
        statement: Statement | None = None,
    ) -> "Decision":
        """Create a denied decision with an explicit reason."""
        return cls(
            granted=False,
            trace=EvaluationTrace(
                checked_policy_ids=list(checked or []),
                reason=reason,
                matched_policy_id=policy_id,
                matched_statement=statement,
            ),
            context=dict(context or {}),
        )


# =============================================================================
# Store Document
# =============================================================================


class StoreDocument(BaseModel):
    """
    The reference persisted shape: users, roles and policies keyed by id.

    Used by the file-backed storage, the CLI and store validation.
    """

    model_config = ConfigDict(extra="forbid")

    users: list[Subject] = Field(default_factory=list)
    roles: list[Role] = Field(default_factory=list)
    policies: list[Policy] = Field(default_factory=list)


# =============================================================================
# Loading Helpers
# =============================================================================


def _parse_document_text(content: str, suffix: str) -> Any:
    """Parse JSON or YAML text depending on the file suffix."""
    if suffix in (".yaml", ".yml"):
        return yaml.safe_load(content)
    return json.loads(content)


def load_store_document(path: Path | str) -> StoreDocument:
    """
    Load a store document from a JSON or YAML file.

    Args:
        path: Path to the file (.json, .yaml or .yml)

    Returns:
        Validated StoreDocument

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the content doesn't match the schema
    """
    path = Path(path)
    with path.open(encoding="utf-8") as f:
        data = _parse_document_text(f.read(), path.suffix.lower())

    return StoreDocument.model_validate(data or {})


def load_store_document_from_string(content: str, fmt: str = "json") -> StoreDocument:
    """Load a store document from a JSON or YAML string."""
    data = _parse_document_text(content, f".{fmt.lower()}")
    return StoreDocument.model_validate(data or {})


def dump_store_document(document: StoreDocument, fmt: str = "json") -> str:
    """Render a store document as JSON (camelCase keys) or YAML."""
    data = document.model_dump(mode="json", by_alias=True, exclude_none=True)
    if fmt.lower() in ("yaml", "yml"):
        return yaml.safe_dump(data, sort_keys=False)
    return json.dumps(data, indent=2)
