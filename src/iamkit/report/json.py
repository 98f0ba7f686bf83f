"""
JSON report generator for iamkit.

Renders decisions as structured JSON for programmatic consumption.

Design Principles:
    - Complete data: Include the full evaluation trace
    - Consistent schema: Same structure for every decision
    - Human-readable keys: Use descriptive snake_case names
    - ISO timestamps: Standard datetime format
"""

import json
from datetime import UTC, datetime
from typing import Any

from iamkit.schema import Decision

REPORT_VERSION = "1.0"


def build_decision_dict(
    decision: Decision,
    subject_id: str | None = None,
    action: str | None = None,
    resource: str | None = None,
) -> dict[str, Any]:
    """
    Build a report dictionary for a decision.

    Args:
        decision: The decision to report on
        subject_id: Requesting subject, if known
        action: Requested action, if known
        resource: Requested resource, if known

    Returns:
        Dictionary with the decision and its trace
    """
    trace = decision.trace
    statement = trace.matched_statement
    return {
        "report_version": REPORT_VERSION,
        "generated_at": datetime.now(UTC).isoformat(),
        "request": {
            "subject_id": subject_id,
            "action": action,
            "resource": resource,
        },
        "granted": decision.granted,
        "reason": trace.reason,
        "matched_policy_id": trace.matched_policy_id,
        "matched_statement": (
            statement.model_dump(mode="json", exclude_none=True) if statement else None
        ),
        "checked_policy_ids": list(trace.checked_policy_ids),
        "context": decision.context,
    }


def decision_to_json(
    decision: Decision,
    subject_id: str | None = None,
    action: str | None = None,
    resource: str | None = None,
    indent: int = 2,
) -> str:
    """Render a decision report as a JSON string."""
    report = build_decision_dict(decision, subject_id, action, resource)
    return json.dumps(report, indent=indent, default=_json_serializer)


def _json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for objects not serializable by default."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if hasattr(obj, "pattern"):
        return obj.pattern
    return str(obj)
