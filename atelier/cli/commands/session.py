"""
Session management commands for Atelier CLI.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(help="Session management")
console = Console()


def _open_store():
    from atelier.core.store import SqliteSessionStore
    from atelier.models.config import AtelierConfig

    config = AtelierConfig.load()
    return SqliteSessionStore(config.get_storage_dir(), config.recovery.max_reports)


@app.command("list")
def session_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum sessions to show"),
):
    """List saved sessions."""
    store = _open_store()
    sessions = store.list_sessions(limit=limit)

    if not sessions:
        console.print("[dim]No sessions found[/]")
        return

    table = Table(title="Saved Sessions", show_header=True)
    table.add_column("Session ID", style="bold")
    table.add_column("Locale")
    table.add_column("Phase")
    table.add_column("Decisions", justify="right")
    table.add_column("Utilization", justify="right")
    table.add_column("Updated")

    for session in sessions:
        utilization = session["allocated"] / session["total_budget"] if session["total_budget"] else 0.0
        color = "red" if utilization >= 0.9 else "yellow" if utilization >= 0.75 else "green"
        table.add_row(
            session["session_id"],
            session["locale"],
            session["current_phase"],
            str(session["decision_count"]),
            f"[{color}]{utilization:.0%}[/]",
            session["updated_at"][:19] if session["updated_at"] else "N/A",
        )

    console.print(table)


@app.command("show")
def session_show(
    session_id: str = typer.Argument(..., help="Session ID to show"),
):
    """Show details of a session."""
    from rich.panel import Panel

    from atelier.utils.helpers import format_currency

    store = _open_store()
    record = store.load(session_id)

    if not record:
        console.print(f"[red]Session '{session_id}' not found[/]")
        raise typer.Exit(1)

    budget = record.cost_simulation.budget
    continuity = record.continuity
    reports = store.get_error_reports(session_id)
    unresolved = record.cost_simulation.unresolved_alerts()

    content = f"""
[bold]Locale:[/] {record.locale}
[bold]Phase:[/] {continuity.current_phase.value}
[bold]Completed Phases:[/] {", ".join(p.value for p in continuity.completed_phases) or "None"}
[bold]Created:[/] {record.created_at}

[bold]Budget:[/]
  Total: {format_currency(budget.total)}
  Allocated: {format_currency(budget.allocated)}
  Spent: {format_currency(budget.spent)}
  Remaining: {format_currency(budget.remaining)}

[bold]Decisions:[/] {len(record.decisions)}
[bold]Open Alerts:[/] {len(unresolved)}
[bold]Error Reports:[/] {len(reports)}
"""

    console.print(Panel(content, title=f"[bold]Session: {session_id}[/]"))

    if record.decisions:
        table = Table(title="Decisions", show_header=True)
        table.add_column("#", justify="right")
        table.add_column("Category")
        table.add_column("Decision")
        table.add_column("Status")
        table.add_column("Cost", justify="right")
        for decision in record.decisions:
            table.add_row(
                str(decision.sequence),
                decision.category.value,
                decision.decision,
                decision.status.value,
                format_currency(decision.implementation.cost),
            )
        console.print(table)


@app.command("delete")
def session_delete(
    session_id: str = typer.Argument(..., help="Session ID to delete"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """Delete a session."""
    store = _open_store()

    if not force:
        confirm = typer.confirm(f"Delete session {session_id}?")
        if not confirm:
            console.print("[yellow]Cancelled[/]")
            return

    if store.delete(session_id):
        console.print(f"[green]Deleted session: {session_id}[/]")
    else:
        console.print(f"[red]Session '{session_id}' not found[/]")


@app.command("export")
def session_export(
    session_id: str = typer.Argument(..., help="Session ID to export"),
    output: str = typer.Option(None, "--output", "-o", help="Output file path"),
):
    """Export a session snapshot to JSON."""
    import asyncio

    from atelier.core.tracker import DecisionTracker
    from atelier.exceptions import SessionNotFoundError

    store = _open_store()
    tracker = DecisionTracker(store)

    try:
        snapshot = asyncio.run(tracker.export_session(session_id))
    except SessionNotFoundError:
        console.print(f"[red]Session '{session_id}' not found[/]")
        raise typer.Exit(1)

    if output:
        output_path = snapshot.save(output)
        console.print(f"[green]Exported to: {output_path}[/]")
    else:
        console.print_json(snapshot.to_json())


@app.command("import")
def session_import(
    snapshot_file: str = typer.Argument(..., help="Snapshot JSON produced by 'session export'"),
):
    """Import a session snapshot, replacing any session with the same ID."""
    import asyncio

    from atelier.core.tracker import DecisionTracker
    from atelier.exceptions import AtelierError
    from atelier.models.session import SessionSnapshot

    path = Path(snapshot_file)
    if not path.exists():
        console.print(f"[red]File not found: {path}[/]")
        raise typer.Exit(1)

    store = _open_store()
    tracker = DecisionTracker(store)

    try:
        record = asyncio.run(tracker.import_session(SessionSnapshot.load(path)))
    except (AtelierError, ValueError) as e:
        console.print(f"[red]Import failed: {e}[/]")
        raise typer.Exit(1)

    console.print(f"[green]Imported session: {record.session_id}[/] ({len(record.decisions)} decisions)")
