"""
Main application entry point for RecordLens.

Provides a CLI for decoding envelopes, previewing values, summarizing audit
events and fetching decoded record pages from the backend.
"""

import json
import sys
import traceback
from typing import Any, List, Optional

import click
from rich.console import Console
from rich.table import Table

from recordlens.cli_commands.doctor import doctor
from recordlens.core.config import get_settings, print_configuration_summary, validate_required_settings
from recordlens.core.exceptions import ApiError, ConfigurationError, DecodeError, RecordLensError
from recordlens.core.logging import set_correlation_id, setup_logging
from recordlens.core.models import PageResult, stringify
from recordlens.crypto.envelope import seal as seal_value
from recordlens.data.api_client import create_backend_client
from recordlens.engine import create_engine
from recordlens.services.records_service import RecordsService

console = Console()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines instead of rich output")
@click.option("--correlation-id", help="Set correlation ID for request tracing")
@click.pass_context
def main(ctx, debug: bool, json_logs: bool, correlation_id: Optional[str]):
    """Decode and summarize encrypted records from the outreach console backend."""
    ctx.ensure_object(dict)

    setup_logging(debug=debug, rich_output=not json_logs)

    if correlation_id:
        set_correlation_id(correlation_id)

    ctx.obj["debug"] = debug
    ctx.obj["correlation_id"] = correlation_id


main.add_command(doctor)


def _fail(ctx, label: str, error: Exception) -> None:
    console.print(f"[red]{label}:[/red] {error}")
    if ctx.obj and ctx.obj.get("debug"):
        console.print(traceback.format_exc())
    sys.exit(1)


def _require(workflow: str) -> None:
    missing = validate_required_settings(workflow)
    if missing:
        console.print("[red]Configuration Error:[/red]")
        for item in missing:
            console.print(f"  - Missing: {item}")
        sys.exit(1)


@main.command()
@click.argument("envelope")
@click.pass_context
def decode(ctx, envelope: str):
    """Decrypt an "iv:ciphertext" ENVELOPE and print the value."""
    _require("decode")
    try:
        value = create_engine().decode(envelope)
    except DecodeError as e:
        console.print(f"[red]Decode failed:[/red] {e.message}")
        sys.exit(1)
    except ConfigurationError as e:
        _fail(ctx, "Configuration Error", e)

    if isinstance(value, str):
        click.echo(value)
    else:
        console.print_json(json.dumps(value, ensure_ascii=False))


@main.command()
@click.argument("value")
@click.option(
    "--encoding",
    type=click.Choice(["hex", "base64"]),
    default="hex",
    help="Ciphertext text encoding",
)
@click.option("--json", "as_json", is_flag=True, help="Parse VALUE as JSON before sealing")
@click.pass_context
def seal(ctx, value: str, encoding: str, as_json: bool):
    """Encrypt VALUE into an envelope (for fixtures and backend testing)."""
    _require("decode")
    try:
        payload = json.loads(value) if as_json else value
        click.echo(seal_value(payload, get_settings().crypto.encryption_key, encoding=encoding))
    except ValueError as e:
        _fail(ctx, "Invalid JSON", e)
    except RecordLensError as e:
        _fail(ctx, "Seal Error", e)


@main.command()
@click.argument("value")
@click.pass_context
def preview(ctx, value: str):
    """Print the one-line preview of VALUE (JSON text, envelope or plain text)."""
    _require("decode")
    click.echo(create_engine().preview(value))


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def summarize(ctx, path: str):
    """Summarize audit events from a JSON file (one record or a list)."""
    _require("decode")
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except ValueError as e:
        _fail(ctx, "Invalid JSON", e)

    events = data if isinstance(data, list) else [data]
    engine = create_engine()

    table = Table(title=f"Audit Summary ({len(events)} events)")
    table.add_column("Action", style="cyan")
    table.add_column("Table", style="white")
    table.add_column("Summary", style="green")
    for event in events:
        if not isinstance(event, dict):
            continue
        table.add_row(
            stringify(event.get("action_type") or event.get("action") or ""),
            stringify(event.get("table_name") or event.get("table") or ""),
            engine.summarize(event),
        )
    console.print(table)


def _records_service() -> RecordsService:
    _require("fetch")
    settings = get_settings()
    engine = create_engine(settings)
    client = create_backend_client(settings.api)
    return RecordsService(client, engine.decoder, settings.display)


def _display_page(title: str, result: PageResult, columns: List[str]) -> None:
    if result.error:
        console.print(f"[yellow]{result.error}[/yellow]")

    table = Table(title=f"{title} (page {result.page}, {len(result.rows)} of {result.total})")
    for column in columns:
        table.add_column(column.replace("_", " ").title(), overflow="fold")
    for row in result.rows:
        table.add_row(*[_cell(row.get(column)) for column in columns])
    console.print(table)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return stringify(value)


def _run_fetch(ctx, label: str, fetch, title: str, columns: List[str], **kwargs):
    try:
        service = _records_service()
        try:
            result = fetch(service, **kwargs)
        finally:
            service.client.close()
        _display_page(title, result, columns)
    except ConfigurationError as e:
        _fail(ctx, "Configuration Error", e)
    except ApiError as e:
        _fail(ctx, "API Error", e)
    except RecordLensError as e:
        _fail(ctx, label, e)


@main.command()
@click.option("--page", default=1, type=int, help="Page number")
@click.option("--limit", default=10, type=int, help="Rows per page")
@click.pass_context
def users(ctx, page: int, limit: int):
    """Fetch a page of users with decrypted names and emails."""
    _run_fetch(
        ctx,
        "Users Error",
        RecordsService.fetch_users,
        "Users",
        ["id", "username", "display_name", "email", "roles"],
        page=page,
        limit=limit,
    )


@main.command()
@click.option("--page", default=1, type=int, help="Page number")
@click.option("--limit", default=50, type=int, help="Rows per page")
@click.option("--search", help="Free-text search filter")
@click.option("--action", help="Action type filter (e.g. UPDATE)")
@click.option("--table", "table_name", help="Table name filter")
@click.pass_context
def audit(
    ctx,
    page: int,
    limit: int,
    search: Optional[str],
    action: Optional[str],
    table_name: Optional[str],
):
    """Fetch a page of the audit trail with one-line summaries."""
    _run_fetch(
        ctx,
        "Audit Error",
        RecordsService.fetch_audit_logs,
        "Audit Trail",
        ["created_at", "author", "action_type", "table_name", "summary"],
        page=page,
        limit=limit,
        search=search,
        action=action,
        table=table_name,
    )


@main.command()
@click.option("--page", default=1, type=int, help="Page number")
@click.option("--limit", default=10, type=int, help="Rows per page")
@click.pass_context
def patients(ctx, page: int, limit: int):
    """Fetch a page of patients with encrypted fields decoded."""
    _run_fetch(
        ctx,
        "Patients Error",
        RecordsService.fetch_patients,
        "Patients",
        ["id", "first_name", "last_name", "city"],
        page=page,
        limit=limit,
    )


@main.command()
@click.pass_context
def config(ctx):
    """Display current configuration."""
    try:
        console.print("[blue]RecordLens Configuration[/blue]")

        missing = validate_required_settings("fetch")
        if missing:
            console.print("[red]Configuration Issues:[/red]")
            for item in missing:
                console.print(f"  - Missing: {item}")
            console.print()
        else:
            console.print("[green]Configuration Valid[/green]")
            console.print()

        print_configuration_summary()

        sys.exit(0 if not missing else 1)

    except Exception as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
