"""unitsync CLI - async commands for imports and mapping review.

Commands:
- init: Initialize database schema
- import: Import a unit table (CSV/XLSX/JSON) into a project
- pending: List imports waiting for mapping approval
- approve-mapping: Approve an auto-generated field mapping
- process-pending: Reconcile a pending import after approval
- history: Show import history for a project
- versions: Show version history of a unit
- suggest-mapping: Infer a field mapping from column headers
- web serve: Run the API server
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from unitsync.config import get_config
from unitsync.core.logging import configure_logging
from unitsync.db.connection import close_db, get_session, init_db
from unitsync.errors import UnitSyncError
from unitsync.mapping.keywords import load_keyword_dictionary
from unitsync.models import Caller, CallerKind, ImportRequest
from unitsync.pipeline.ledger import VersionLedger
from unitsync.pipeline.loader import load_rows
from unitsync.pipeline.types import ImportResult, PendingImport
from unitsync.review.gate import ImportGate
from unitsync.review.service import approve_mapping, suggest_mapping

app = typer.Typer(
    name="unitsync",
    help="unitsync - unit inventory import and reconciliation",
    no_args_is_help=True,
)
web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()


def _run(coro):
    """Run a coroutine, rendering import failures instead of tracebacks."""

    async def _wrapped():
        try:
            return await coro
        finally:
            await close_db()

    try:
        return asyncio.run(_wrapped())
    except UnitSyncError as e:
        console.print(f"[red]✗[/red] {e.kind}: {e.message}")
        if e.details:
            console.print(f"  {e.details}", style="dim")
        raise typer.Exit(code=1) from e


def _print_result(result: ImportResult) -> None:
    table = Table(title="Import Result")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")

    table.add_row("Total rows", str(result.total))
    table.add_row("Created", str(result.created))
    table.add_row("Updated", str(result.updated))
    table.add_row("Skipped", str(result.skipped))
    table.add_row("Marked as sold", str(result.marked_as_sold))
    console.print(table)

    for warning in result.warnings[:10]:
        console.print(f"  [yellow]⚠[/yellow] {warning}")
    errors = result.reported_errors()
    for err in errors[:10]:
        console.print(f"  [red]✗[/red] {err}", style="dim")
    if len(errors) > 10:
        console.print(f"  ... {len(errors) - 10} more (see API response for full list)")


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")
    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="import")
def import_cmd(
    file_path: Path = typer.Argument(..., help="Unit table (CSV/XLSX/JSON)"),
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    mapping_id: str | None = typer.Option(None, "--mapping", help="Field mapping ID"),
    building_id: str | None = typer.Option(None, "--building", help="Default building ID"),
    currency: str | None = typer.Option(None, "--currency", help="Currency code"),
    sheet_name: str | None = typer.Option(None, "--sheet", help="Sheet name for Excel files"),
    no_update: bool = typer.Option(False, "--no-update", help="Skip units that already exist"),
    automated: bool = typer.Option(
        False, "--automated", help="Import as an automated feed (requires an approved mapping)"
    ),
    imported_by: str = typer.Option("cli", "--by", help="Imported by user/system"),
):
    """Import a unit table into a project."""
    try:
        rows = load_rows(file_path, sheet_name=sheet_name)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e

    if not rows:
        console.print("[red]✗[/red] No rows to import")
        raise typer.Exit(code=1)

    request = ImportRequest(
        data=rows,
        update_existing=not no_update,
        default_building_id=building_id,
        currency=currency,
        field_mapping_id=mapping_id,
    )
    caller = Caller(
        kind=CallerKind.AUTOMATED if automated else CallerKind.INTERACTIVE,
        username=imported_by,
    )

    console.print(f"[bold]Importing {len(rows)} rows:[/bold] project={project_id}")

    async def _import():
        config = get_config().imports
        async with get_session() as session:
            gate = ImportGate(
                session,
                config=config,
                dictionary=load_keyword_dictionary(config.field_keywords_path),
            )
            return await gate.submit(project_id, request, caller)

    outcome = _run(_import())

    if isinstance(outcome, PendingImport):
        console.print(f"[yellow]⏸[/yellow] {outcome.message}")
        console.print(f"  Import ID: {outcome.import_id}")
        console.print(f"  Mapping ID: {outcome.field_mapping_id}")
        for header, fields in outcome.ambiguous.items():
            console.print(f"  [yellow]?[/yellow] '{header}' matches {', '.join(fields)}")
        for target, headers in outcome.shared_targets.items():
            console.print(f"  [yellow]?[/yellow] {target} comes from {', '.join(headers)}")
        return

    _print_result(outcome)
    console.print(f"\n[bold green]✓[/bold green] Import {outcome.import_id} processed")


@app.command()
def pending(project_id: str = typer.Option(..., "--project", help="Project ID")):
    """List imports waiting for mapping approval."""

    async def _pending():
        async with get_session() as session:
            return await ImportGate(session, config=get_config().imports).list_pending(project_id)

    imports = _run(_pending())
    if not imports:
        console.print("No pending imports")
        return

    table = Table(title=f"Pending imports ({project_id})")
    table.add_column("Import ID", style="cyan")
    table.add_column("Mapping ID")
    table.add_column("Created")
    table.add_column("Units", justify="right")
    table.add_column("By")
    for item in imports:
        table.add_row(
            item["id"],
            item["mappingId"],
            item["createdAt"] or "",
            str(item["totalUnits"]),
            item["importedBy"],
        )
    console.print(table)


@app.command(name="approve-mapping")
def approve_mapping_cmd(
    mapping_id: str = typer.Argument(..., help="Field mapping ID"),
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    mappings_file: Path | None = typer.Option(
        None, "--mappings", help="JSON file with corrected header → field mappings"
    ),
    approved_by: str = typer.Option("cli", "--by", help="Approver"),
    no_default: bool = typer.Option(False, "--no-default", help="Do not make it the default"),
):
    """Approve a field mapping so automated imports can use it."""
    corrected = None
    if mappings_file is not None:
        corrected = json.loads(mappings_file.read_text(encoding="utf-8"))

    async def _approve():
        async with get_session() as session:
            mapping = await approve_mapping(
                session,
                project_id,
                mapping_id,
                approved_by=approved_by,
                mappings=corrected,
                make_default=not no_default,
            )
            return mapping.to_dict()

    approved = _run(_approve())
    console.print(f"[bold green]✓[/bold green] Mapping {approved['id']} approved")
    for header, target in approved["mappings"].items():
        console.print(f"  {header} → {target}", style="dim")


@app.command(name="process-pending")
def process_pending_cmd(
    import_id: str = typer.Argument(..., help="Pending import ID"),
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    requested_by: str = typer.Option("cli", "--by", help="Requested by"),
):
    """Reconcile a pending import whose mapping has been approved."""

    async def _process():
        async with get_session() as session:
            gate = ImportGate(session, config=get_config().imports)
            return await gate.process_pending(
                project_id,
                import_id,
                Caller(kind=CallerKind.INTERACTIVE, username=requested_by),
            )

    result = _run(_process())
    _print_result(result)
    console.print(f"\n[bold green]✓[/bold green] Import {import_id} processed")


@app.command()
def history(
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    page: int = typer.Option(1, "--page", help="Page number"),
    limit: int = typer.Option(20, "--limit", "-n", help="Imports per page"),
):
    """Show import history for a project."""

    async def _history():
        async with get_session() as session:
            return await ImportGate(session).history(project_id, page=page, limit=limit)

    payload = _run(_history())
    table = Table(title=f"Imports ({project_id})")
    table.add_column("Import ID", style="cyan")
    table.add_column("Date")
    table.add_column("By")
    table.add_column("Total", justify="right")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Updated", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Processed")
    for record in payload["data"]:
        table.add_row(
            record["id"],
            record["importedAt"] or "",
            record["importedBy"] or "",
            str(record["totalUnits"]),
            str(record["createdUnits"]),
            str(record["updatedUnits"]),
            str(record["skippedUnits"]),
            "✓" if record["processed"] else "pending",
        )
    console.print(table)

    pagination = payload["pagination"]
    console.print(
        f"Page {pagination['page']} of {max(pagination['totalPages'], 1)} "
        f"({pagination['totalCount']} imports)",
        style="dim",
    )


@app.command()
def versions(
    unit_id: str = typer.Argument(..., help="Unit ID"),
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    limit: int = typer.Option(10, "--limit", "-n", help="Versions to show"),
):
    """Show the version history of a unit."""

    async def _versions():
        async with get_session() as session:
            return await VersionLedger(session).history(project_id, unit_id, limit=limit)

    payload = _run(_versions())
    for version in payload["data"]:
        console.print(
            f"[bold]#{version['sequence']}[/bold] {version['versionDate']} "
            f"{version['updateType']} price={version['price']} status={version['status']}"
        )
        for field_name, change in (version["changes"] or {}).items():
            console.print(f"    {field_name}: {change['from']} → {change['to']}", style="dim")


@app.command(name="suggest-mapping")
def suggest_mapping_cmd(
    headers: list[str] = typer.Argument(None, help="Column headers"),
    file_path: Path | None = typer.Option(None, "--file", help="Read headers from a unit table"),
):
    """Infer a header → field mapping without storing anything."""
    if file_path is not None:
        rows = load_rows(file_path)
        headers = list(rows[0].keys()) if rows else []

    config = get_config().imports
    try:
        suggestion = suggest_mapping(
            headers or [],
            load_keyword_dictionary(config.field_keywords_path),
            unit_number_min_score=config.unit_number_fuzzy_min_score,
        )
    except ValueError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title="Suggested mapping")
    table.add_column("Header", style="cyan")
    table.add_column("Field", style="green")
    table.add_column("Note", style="yellow")
    for header, target in suggestion.mappings.items():
        ambiguous = suggestion.ambiguous.get(header)
        shared = suggestion.shared_targets.get(target, [])
        if ambiguous:
            note = f"ambiguous: {', '.join(ambiguous)}"
        elif len(shared) > 1:
            note = f"shared with {', '.join(h for h in shared if h != header)}"
        else:
            note = ""
        table.add_row(header, target, note)
    console.print(table)

    if not suggestion.has_required_fields:
        console.print("[yellow]⚠[/yellow] No column was recognized as the unit number")


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI import service."""
    import uvicorn

    typer.echo(f"Starting unitsync API on http://{host}:{port}")
    uvicorn.run("unitsync.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    configure_logging()
    app()


if __name__ == "__main__":
    main()
