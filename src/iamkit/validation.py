"""
Static validation of a store document.

Checks a StoreDocument for problems the engine tolerates at evaluation
time: missing ids are skipped and unknown operators never match.

Errors (the store is inconsistent):
    - Duplicate user, role or policy ids
    - Users referencing unknown roles or policies
    - Roles referencing unknown policies

Warnings (legal, but a statement can never match):
    - Statements with empty actions or resources
    - Conditions naming operators missing from the registry
"""

from collections import Counter
from dataclasses import dataclass, field

from iamkit.conditions import ConditionOperatorRegistry, create_default_registry
from iamkit.schema import StoreDocument


@dataclass
class ValidationResult:
    """
    Result of validating a store document.

    Attributes:
        errors: Problems that make the store inconsistent
        warnings: Non-fatal issues found during validation
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def _duplicates(ids: list[str]) -> list[str]:
    return [i for i, count in Counter(ids).items() if count > 1]


def validate_store(
    document: StoreDocument,
    registry: ConditionOperatorRegistry | None = None,
) -> ValidationResult:
    """
    Validate a store document.

    Args:
        document: The document to check
        registry: Operator registry used to resolve condition operators
                  (defaults to the built-in operators)

    Returns:
        ValidationResult listing every error and warning found
    """
    if registry is None:
        registry = create_default_registry()

    result = ValidationResult()

    for kind, ids in (
        ("user", [u.id for u in document.users]),
        ("role", [r.id for r in document.roles]),
        ("policy", [p.id for p in document.policies]),
    ):
        for dup in _duplicates(ids):
            result.errors.append(f"Duplicate {kind} id: {dup}")

    role_ids = {r.id for r in document.roles}
    policy_ids = {p.id for p in document.policies}

    for user in document.users:
        for role_id in user.role_ids:
            if role_id not in role_ids:
                result.errors.append(f"User {user.id} references unknown role {role_id}")
        for policy_id in user.policy_ids:
            if policy_id not in policy_ids:
                result.errors.append(f"User {user.id} references unknown policy {policy_id}")

    for role in document.roles:
        for policy_id in role.policy_ids:
            if policy_id not in policy_ids:
                result.errors.append(f"Role {role.id} references unknown policy {policy_id}")

    for policy in document.policies:
        for index, statement in enumerate(policy.statements):
            label = f"Policy {policy.id} statement {statement.sid or index}"
            if not statement.actions:
                result.warnings.append(f"{label} has no actions and can never match")
            if not statement.resources:
                result.warnings.append(f"{label} has no resources and can never match")
            for condition in statement.conditions:
                if condition.operator not in registry:
                    result.warnings.append(
                        f"{label} uses unknown operator '{condition.operator}'"
                    )

    return result


def format_validation_result(result: ValidationResult) -> str:
    """Format validation result for display."""
    lines = []

    if result.is_valid:
        lines.append("✓ Store validation passed")
    else:
        lines.append(f"✗ Store validation failed ({len(result.errors)} error(s))")

    if result.errors:
        lines.append("\nErrors:")
        for error in result.errors:
            lines.append(f"  - {error}")

    if result.warnings:
        lines.append("\nWarnings:")
        for warning in result.warnings:
            lines.append(f"  ! {warning}")

    return "\n".join(lines)
