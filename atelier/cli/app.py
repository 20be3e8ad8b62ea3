"""
Main CLI application.

This module defines the main Typer application and entry point.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from atelier import __version__
from atelier.cli.commands import config, session

# Create the main app
app = typer.Typer(
    name="atelier",
    help="Creative Session Orchestration Core",
    add_completion=True,
    rich_markup_mode="rich",
    no_args_is_help=True,
)

# Add sub-commands
app.add_typer(config.app, name="config", help="Configuration management")
app.add_typer(session.app, name="session", help="Session management")

console = Console()


def version_callback(value: bool):
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]Atelier[/] v{__version__}")
        raise typer.Exit()


# Global state for CLI options
class CLIState:
    """Global CLI state for options like quiet, debug, color."""

    quiet: bool = False
    debug: bool = False
    no_color: bool = False


cli_state = CLIState()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-essential output",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
):
    """
    Atelier - Creative Session Orchestration Core

    Validates analysis handoffs, replays creative decisions against a budget
    and inspects stored sessions.

    Global Options:
        --quiet, -q    Suppress non-essential output
        --debug        Enable debug logging
        --no-color     Disable colored output
    """
    from atelier.utils.logger import setup_logging

    cli_state.quiet = quiet
    cli_state.debug = debug
    cli_state.no_color = no_color

    # Set environment variable for no-color (used by Rich)
    if no_color:
        os.environ["NO_COLOR"] = "1"

    if debug:
        setup_logging("debug")
    elif quiet:
        setup_logging("error")


def get_console() -> Console:
    """Get a console instance with current CLI state applied."""
    return Console(
        quiet=cli_state.quiet,
        no_color=cli_state.no_color,
    )


@app.command()
def validate(
    document: str = typer.Argument(..., help="Analysis document (.yaml, .yml or .json)"),
):
    """
    Validate an analysis handoff document.

    Prints completeness, missing elements and warnings, and the synthesized
    session context when the document is valid.

    Example:
        atelier validate analysis.yaml
    """
    from atelier.core.handoff import ContextSynthesizer
    from atelier.exceptions import ValidationError
    from atelier.utils.validators import load_document

    out = get_console()

    try:
        data = load_document(document)
    except ValidationError as e:
        out.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)

    synthesizer = ContextSynthesizer()
    result = synthesizer.validator.validate(data)

    status_style = {"passed": "green", "failed": "red", "warning": "yellow"}
    table = Table(title="Handoff Checks", show_header=True)
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Message")
    for check in result.checks:
        style = status_style.get(check.status.value, "white")
        table.add_row(check.name, f"[{style}]{check.status.value}[/]", check.message)
    out.print(table)

    out.print(f"\n[bold]Completeness:[/] {result.completeness:.0%}")
    if result.missing_elements:
        out.print("[bold red]Missing:[/]")
        for element in result.missing_elements:
            out.print(f"  [red]- {element}[/]")
    if result.warnings:
        out.print("[bold yellow]Warnings:[/]")
        for warning in result.warnings:
            out.print(f"  [yellow]- {warning}[/]")
    if result.recommendations:
        out.print("[bold]Recommendations:[/]")
        for recommendation in result.recommendations:
            out.print(f"  - {recommendation}")

    if not result.is_valid:
        raise typer.Exit(1)

    context = synthesizer.synthesize(data)
    out.print(Panel(context.to_prompt_summary(), title="[bold]Session Context[/]"))


def _resolve_refs(entry: dict[str, Any], keys: dict[str, str]) -> dict[str, Any]:
    """Replace symbolic ``key`` references with tracked decision ids."""
    fields = {k: v for k, v in entry.items() if k != "key"}
    for name in ("dependencies", "influences"):
        if name in fields:
            fields[name] = [keys.get(ref, ref) for ref in fields[name]]
    return fields


async def run_simulation(
    decisions: list[dict[str, Any]],
    budget: float | None,
    locale: str,
    analysis: dict[str, Any] | None = None,
    save: bool = False,
    session_id: str | None = None,
):
    """
    Replay decisions into a fresh session.

    Args:
        decisions: Decision field mappings; an optional ``key`` lets later
            entries reference earlier ones in ``dependencies``/``influences``
        budget: Session budget; from the analysis or configuration when None
        locale: Session locale
        analysis: Optional analysis document to start the session from
        save: Persist the session to the SQLite store
        session_id: Session id; generated when None

    Returns:
        Tuple of the session id and its cost simulation view
    """
    from atelier.core.orchestrator import CreativeSessionOrchestrator
    from atelier.core.store import InMemorySessionStore, SqliteSessionStore
    from atelier.models.config import AtelierConfig
    from atelier.utils.helpers import generate_id

    config = AtelierConfig.load()
    store = (
        SqliteSessionStore(config.get_storage_dir(), config.recovery.max_reports)
        if save else InMemorySessionStore(config.recovery.max_reports)
    )
    orchestrator = CreativeSessionOrchestrator(config, store=store)
    session_id = session_id or generate_id("sim", 8)

    if analysis is not None:
        await orchestrator.start_session(session_id, analysis)
        if budget is not None:
            record = await orchestrator.get_session(session_id)
            await orchestrator.tracker.initialize_session(
                session_id, budget, record.locale, handoff_context=record.handoff_context
            )
    else:
        await orchestrator.initialize_session(session_id, budget, locale)

    keys: dict[str, str] = {}
    for entry in decisions:
        decision = await orchestrator.track_decision(session_id, _resolve_refs(entry, keys))
        if "key" in entry:
            keys[str(entry["key"])] = decision.id

    orchestrator.scheduler.flush()
    return session_id, await orchestrator.get_cost_simulation(session_id)


@app.command()
def simulate(
    decisions_file: str = typer.Argument(..., help="Decisions file (.yaml or .json) with a 'decisions' list"),
    budget: Optional[float] = typer.Option(None, "--budget", "-b", help="Session budget"),
    locale: str = typer.Option("en", "--locale", "-l", help="Session locale (en, ja)"),
    analysis: Optional[str] = typer.Option(None, "--analysis", "-a", help="Start from an analysis document"),
    save: bool = typer.Option(False, "--save", help="Persist the session to the SQLite store"),
    session_id: Optional[str] = typer.Option(None, "--session-id", "-s", help="Session ID to use"),
):
    """
    Replay creative decisions against a budget.

    Example:
        atelier simulate decisions.yaml --budget 5000
        atelier simulate decisions.yaml --analysis analysis.yaml --save
    """
    from atelier.exceptions import AtelierError, ValidationError
    from atelier.utils.helpers import format_currency
    from atelier.utils.validators import load_document

    out = get_console()

    try:
        data = load_document(decisions_file)
        analysis_data = load_document(analysis) if analysis else None
    except ValidationError as e:
        out.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)

    entries = data.get("decisions") or []
    if not isinstance(entries, list):
        out.print("[red]'decisions' must be a list[/]")
        raise typer.Exit(1)
    if budget is None and analysis_data is None:
        budget = data.get("budget")
    locale = data.get("locale", locale)

    try:
        sid, view = asyncio.run(run_simulation(entries, budget, locale, analysis_data, save, session_id))
    except AtelierError as e:
        out.print(f"[red]Simulation failed: {e}[/]")
        raise typer.Exit(1)

    simulation = view.simulation
    table = Table(title=f"Cost Simulation: {sid}", show_header=True)
    table.add_column("Category", style="bold")
    table.add_column("Budgeted", justify="right")
    table.add_column("Spent", justify="right")
    table.add_column("Remaining", justify="right")
    for category, bucket in simulation.breakdown.items():
        remaining_style = "red" if bucket.remaining < 0 else "green"
        table.add_row(
            category.value,
            format_currency(bucket.budgeted),
            format_currency(bucket.spent),
            f"[{remaining_style}]{format_currency(bucket.remaining)}[/]",
        )
    out.print(table)

    budget_state = simulation.budget
    analysis_view = view.analysis
    out.print(
        Panel.fit(
            f"[bold]Total:[/] {format_currency(budget_state.total)}\n"
            f"[bold]Allocated:[/] {format_currency(budget_state.allocated)}\n"
            f"[bold]Remaining:[/] {format_currency(budget_state.remaining)}\n"
            f"[bold]Utilization:[/] {analysis_view.budget_utilization:.1%}\n"
            f"[bold]Risk:[/] {analysis_view.risk_level.value}",
            title="[bold blue]Budget[/]",
        )
    )

    if simulation.alerts:
        out.print("[bold]Alerts:[/]")
        for alert in simulation.alerts:
            out.print(f"  [{alert.type.color}]{alert.type.value}[/] {alert.message}")
    if view.recommendations:
        out.print("[bold]Recommendations:[/]")
        for recommendation in view.recommendations:
            out.print(f"  - {recommendation}")
    if save:
        out.print(f"\n[dim]Saved session:[/] [cyan]{sid}[/]")


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
