"""
Console report generator for iamkit.

Renders decisions, validation results and audit logs using Rich.

Design Principles:
    - Status at a glance: Use icons and colors for granted/denied
    - Progressive detail: Verdict first, trace on request
"""

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from iamkit.schema import Decision
from iamkit.validation import ValidationResult


# Status icons
ICON_GRANTED = "[green]✓[/green]"
ICON_DENIED = "[red]✗[/red]"
ICON_WARNING = "[yellow]![/yellow]"


def print_decision(
    decision: Decision,
    subject_id: str | None = None,
    action: str | None = None,
    resource: str | None = None,
    console: Console | None = None,
    verbose: bool = False,
) -> None:
    """
    Print a decision with its evaluation trace.

    Args:
        decision: The decision to display
        subject_id: Requesting subject, if known
        action: Requested action, if known
        resource: Requested resource, if known
        console: Rich Console instance (creates one if not provided)
        verbose: Also show the matched statement and the context
    """
    if console is None:
        console = Console()

    header = Text()
    if decision.granted:
        header.append("GRANTED", style="bold green")
    else:
        header.append("DENIED", style="bold red")
    if subject_id or action or resource:
        header.append(" │ ", style="dim")
        header.append(f"{subject_id or '?'}", style="bold cyan")
        header.append(f" {action or '?'} ", style="bold")
        header.append(f"{resource or '?'}", style="cyan")

    console.print(Panel(header, expand=False))
    console.print(f"  [dim]Reason:[/dim]  {escape(decision.reason or '-')}")

    checked = decision.trace.checked_policy_ids
    console.print(f"  [dim]Checked:[/dim] {escape(', '.join(checked)) if checked else '-'}")

    if not verbose:
        return

    statement = decision.trace.matched_statement
    if statement is not None:
        console.print()
        console.print("[bold]Matched Statement[/bold]")
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Field", style="dim")
        table.add_column("Value")
        if statement.sid:
            table.add_row("Sid", escape(statement.sid))
        table.add_row("Effect", statement.effect.value)
        table.add_row("Actions", escape(", ".join(statement.actions)))
        table.add_row("Resources", escape(", ".join(statement.resources)))
        for condition in statement.conditions:
            table.add_row(
                "Condition",
                escape(f"{condition.operator}({condition.key}, {_truncate(repr(condition.value), 40)})"),
            )
        console.print(table)

    if decision.context:
        console.print()
        console.print("[bold]Context[/bold]")
        for key, value in decision.context.items():
            console.print(f"  • {escape(str(key))} = {escape(_truncate(repr(value), 60))}")


def print_validation_result(
    result: ValidationResult,
    console: Console | None = None,
) -> None:
    """Print store validation errors and warnings."""
    if console is None:
        console = Console()

    if result.is_valid:
        console.print(f"{ICON_GRANTED} [green]Store is valid[/green]")
    else:
        console.print(f"{ICON_DENIED} [red]Store has {len(result.errors)} error(s)[/red]")

    for error in result.errors:
        console.print(f"  {ICON_DENIED} {escape(error)}")
    for warning in result.warnings:
        console.print(f"  {ICON_WARNING} [yellow]{escape(warning)}[/yellow]")


def print_audit_log(
    rows: list[dict[str, Any]],
    console: Console | None = None,
    verbose: bool = False,
) -> None:
    """Print decisions recorded in an audit log as a table."""
    if console is None:
        console = Console()

    if not rows:
        console.print("[dim]No decisions recorded[/dim]")
        return

    table = Table(show_header=True, header_style="bold", show_lines=verbose, expand=True)
    table.add_column("ID", style="dim", width=8)
    table.add_column("Time", style="dim")
    table.add_column("", width=2, justify="center")
    table.add_column("Subject", style="cyan")
    table.add_column("Action")
    table.add_column("Resource", style="cyan")
    table.add_column("Reason", overflow="fold")

    for row in rows:
        reason = escape(row.get("reason") or "")
        if verbose and row.get("checked_policy_ids"):
            reason += f"\n[dim]checked: {escape(', '.join(row['checked_policy_ids']))}[/dim]"
        table.add_row(
            row["decision_id"],
            _format_time(row.get("created_at")),
            ICON_GRANTED if row.get("granted") else ICON_DENIED,
            escape(row.get("subject_id") or "-"),
            escape(row.get("action") or "-"),
            escape(row.get("resource") or "-"),
            reason,
        )

    console.print(table)


def _format_time(value: str | None) -> str:
    if not value:
        return "-"
    return value.replace("T", " ")[:19]


def _truncate(s: str, max_len: int) -> str:
    """Truncate string with ellipsis."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."
