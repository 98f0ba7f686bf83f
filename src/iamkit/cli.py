"""
CLI entry point for iamkit.

This module provides the Typer-based command-line interface for iamkit.

Commands:
    check       Evaluate one access request against a store file
    validate    Check a store file for inconsistencies
    operators   List the registered condition operators
    audit       Show decisions recorded in a SQLite audit log

Architecture Note:
    The CLI only parses arguments and delegates to the engine, storage and
    report modules, so everything it does is available programmatically.
"""

import json
import traceback
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from iamkit import __version__
from iamkit.conditions import create_default_registry
from iamkit.config import configure_logging, load_settings
from iamkit.engine import AccessEngine
from iamkit.errors import IAMError
from iamkit.hooks import AuditLogHooks
from iamkit.report import (
    build_decision_dict,
    print_audit_log,
    print_decision,
    print_validation_result,
)
from iamkit.schema import CombiningAlgorithm, load_store_document
from iamkit.storage import InMemoryStorage, SQLiteStorage
from iamkit.validation import validate_store

# Initialize Typer app with metadata
app = typer.Typer(
    name="iamkit",
    help="Evaluate and inspect statement-based access policies.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]iamkit[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            help="Settings file (.json, .yaml, .yml or .env).",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
) -> None:
    """
    iamkit - deny-by-default access decisions from statement-based policies.
    """
    try:
        settings = load_settings(config)
    except IAMError as e:
        console.print(f"[red]Error loading settings: {escape(e.message)}[/red]")
        raise typer.Exit(code=1)
    configure_logging(settings.log_level)
    ctx.obj = settings


def _parse_context_value(raw: str) -> Any:
    """Interpret a --context value as JSON when possible, else as a string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_context(pairs: list[str], context_file: Path | None) -> dict[str, Any]:
    """Merge --context-file and --context k=v pairs (pairs win)."""
    context: dict[str, Any] = {}

    if context_file is not None:
        content = context_file.read_text(encoding="utf-8")
        if context_file.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
        if data is not None and not isinstance(data, dict):
            raise ValueError(f"Context file {context_file} must contain a mapping")
        context.update(data or {})

    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid context entry '{pair}', expected key=value")
        context[key] = _parse_context_value(value)

    return context


def _output_json_error(error_type: str, message: str, include_traceback: bool = False) -> None:
    """Output an error in JSON format."""
    output = {
        "error": True,
        "error_type": error_type,
        "message": message,
    }
    if include_traceback:
        output["traceback"] = traceback.format_exc()
    print(json.dumps(output, indent=2))


def _fail(json_output: bool, error_type: str, message: str, debug: bool = False) -> None:
    if json_output:
        _output_json_error(error_type, message, debug)
    else:
        console.print(f"[red]{escape(message)}[/red]")
        if debug:
            console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")
    raise typer.Exit(code=1)


@app.command()
def check(
    ctx: typer.Context,
    store_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the store file (JSON or YAML).",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    user: Annotated[
        str,
        typer.Option("--user", "-u", help="Id of the requesting user."),
    ],
    action: Annotated[
        str,
        typer.Option("--action", "-a", help="Requested action."),
    ],
    resource: Annotated[
        str,
        typer.Option("--resource", "-r", help="Requested resource."),
    ],
    context: Annotated[
        Optional[list[str]],
        typer.Option(
            "--context",
            "-c",
            help="Context entry as key=value; values are parsed as JSON when possible.",
        ),
    ] = None,
    context_file: Annotated[
        Optional[Path],
        typer.Option(
            "--context-file",
            help="JSON or YAML file with context entries.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    algorithm: Annotated[
        Optional[CombiningAlgorithm],
        typer.Option(
            "--algorithm",
            help="Combining algorithm (defaults to the configured one).",
        ),
    ] = None,
    audit_db: Annotated[
        Optional[Path],
        typer.Option(
            "--audit-db",
            help="Record the decision in this SQLite audit log.",
            resolve_path=True,
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the decision in JSON format."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show the matched statement and context."),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Include tracebacks in error output."),
    ] = False,
) -> None:
    """
    Evaluate one access request.

    Exits 0 when access is granted and 1 when it is denied or fails.

    Example:
        $ iamkit check store.json -u alice -a read -r doc:1 -c owner=alice
    """
    try:
        document = load_store_document(store_path)
    except Exception as e:
        _fail(json_output, "store_load_error", f"Error loading store: {e}", debug)

    try:
        request_context = _parse_context(context or [], context_file)
    except (ValueError, OSError, yaml.YAMLError) as e:
        _fail(json_output, "context_error", f"Invalid context: {e}", debug)

    subject = next((u for u in document.users if u.id == user), None)
    if subject is None:
        _fail(json_output, "unknown_user", f"User not found in store: {user}")

    settings = ctx.obj if ctx.obj is not None else load_settings()
    audit_store = None
    if audit_db is not None:
        try:
            audit_store = SQLiteStorage(audit_db)
        except IAMError as e:
            _fail(json_output, "audit_db_error", f"Cannot open audit log: {e.message}", debug)
    try:
        engine = AccessEngine.from_settings(
            InMemoryStorage.from_document(document),
            settings,
            hooks=AuditLogHooks(audit_store) if audit_store is not None else None,
        )
        if algorithm is not None:
            engine.algorithm = algorithm
        decision = engine.evaluate_sync(subject, action, resource, request_context)
    finally:
        if audit_store is not None:
            audit_store.close()

    if json_output:
        print(json.dumps(build_decision_dict(decision, user, action, resource), indent=2, default=str))
    else:
        print_decision(decision, user, action, resource, console=console, verbose=verbose)

    raise typer.Exit(code=0 if decision.granted else 1)


@app.command()
def validate(
    store_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the store file (JSON or YAML).",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    Check a store for duplicate ids, dangling references and dead statements.

    Example:
        $ iamkit validate store.yaml
    """
    try:
        document = load_store_document(store_path)
    except Exception as e:
        _fail(json_output, "store_load_error", f"Error loading store: {e}")

    result = validate_store(document, create_default_registry())

    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_validation_result(result, console=console)

    raise typer.Exit(code=0 if result.is_valid else 1)


@app.command()
def operators() -> None:
    """List the built-in condition operators."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Operator", style="cyan")
    table.add_column("Description")

    registry = create_default_registry()
    for name in registry.list_operators():
        doc = (registry.get(name).__doc__ or "").strip().splitlines()
        table.add_row(name, doc[0] if doc else "")

    console.print(table)


@app.command()
def audit(
    db: Annotated[
        Path,
        typer.Argument(
            help="Path to the SQLite audit database.",
            resolve_path=True,
        ),
    ],
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of decisions to show."),
    ] = 20,
    user: Annotated[
        Optional[str],
        typer.Option("--user", "-u", help="Only show decisions for this user."),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show checked policies."),
    ] = False,
) -> None:
    """
    Show decisions recorded in a SQLite audit log, most recent first.

    Example:
        $ iamkit audit iam.db --limit 50
    """
    if not db.exists():
        _fail(json_output, "db_not_found", f"No database found at {db}")

    with SQLiteStorage(db) as store:
        rows = store.list_decisions(limit=limit, subject_id=user)

    if json_output:
        print(json.dumps(rows, indent=2))
    else:
        print_audit_log(rows, console=console, verbose=verbose)


if __name__ == "__main__":
    app()
