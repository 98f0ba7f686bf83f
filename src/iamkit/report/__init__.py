"""
Report generators for iamkit.

This module provides output formatters for decisions and audit logs:
- Console: Rich terminal output with trace tables and status icons
- JSON: Structured output for programmatic consumption

Usage:
    from iamkit.report import print_decision, decision_to_json

    print_decision(decision, action="read", resource="doc:1")
    payload = decision_to_json(decision)
"""

from iamkit.report.console import (
    print_audit_log,
    print_decision,
    print_validation_result,
)
from iamkit.report.json import (
    build_decision_dict,
    decision_to_json,
)

__all__ = [
    "build_decision_dict",
    "decision_to_json",
    "print_audit_log",
    "print_decision",
    "print_validation_result",
]
