"""
Configuration commands for Atelier CLI.
"""

from __future__ import annotations

import os
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(help="Configuration management")
console = Console()


@app.command("show")
def config_show(
    config_file: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file to load",
    ),
):
    """Show current configuration."""
    from pydantic import ValidationError as SchemaError

    from atelier.models.config import AtelierConfig

    try:
        config = AtelierConfig.load(config_file)
    except (SchemaError, OSError) as e:
        console.print(f"[red]Error loading config: {e}[/]")
        raise typer.Exit(1)

    split = "\n".join(f"    {name}: {share:.0%}" for name, share in config.budget.category_split.items())
    console.print(
        Panel.fit(
            f"[bold]LLM Configuration:[/]\n"
            f"  Provider: {config.llm.provider}\n"
            f"  Model: {config.llm.model}\n"
            f"  Temperature: {config.llm.temperature}\n"
            f"  Max Tokens: {config.llm.max_tokens}\n"
            f"  API Key: {'Set' if config.llm.api_key else '[dim]From environment[/]'}\n"
            f"\n[bold]Budget Configuration:[/]\n"
            f"  Default Budget: {config.budget.default_budget:,.2f}\n"
            f"  Warning / Critical: {config.budget.warning_threshold:.0f}% / {config.budget.critical_threshold:.0f}%\n"
            f"  Split:\n{split}\n"
            f"\n[bold]Scheduler:[/]\n"
            f"  Delays (high/medium/low): {config.scheduler.high_delay_ms}/"
            f"{config.scheduler.medium_delay_ms}/{config.scheduler.low_delay_ms} ms\n"
            f"\n[bold]Recovery:[/]\n"
            f"  Timeout: {config.recovery.recovery_timeout}s\n"
            f"  Max Reports: {config.recovery.max_reports}\n"
            f"\n[bold]Storage:[/]\n"
            f"  Backend: {config.storage.backend}\n"
            f"  Directory: {config.storage.directory}",
            title="[bold blue]Atelier Configuration[/]",
        )
    )


@app.command("init")
def config_init(
    config_file: str = typer.Option(
        "atelier.yaml",
        "--output",
        "-o",
        help="Output file path",
    ),
):
    """Initialize a new configuration file."""
    init_config(config_file)


def init_config(config_file: str) -> None:
    """Create a new configuration file with default values."""
    from atelier.models.config import AtelierConfig

    config_path = Path(config_file)

    if config_path.exists():
        overwrite = typer.confirm(f"{config_file} already exists. Overwrite?")
        if not overwrite:
            console.print("[yellow]Cancelled[/]")
            return

    AtelierConfig().save(config_path)

    console.print(f"[green]Configuration saved to {config_file}[/]")
    console.print("\n[bold]Next steps:[/]")
    console.print("1. Set your API key:")
    console.print("   [dim]export GEMINI_API_KEY=your-key-here[/]")
    console.print("   [dim]# or OPENAI_API_KEY, ANTHROPIC_API_KEY, etc.[/]")
    console.print("\n2. Validate a handoff document:")
    console.print("   [dim]atelier validate analysis.yaml[/]")


@app.command("env")
def config_env():
    """Show environment variables used by Atelier."""
    env_vars = [
        ("GEMINI_API_KEY", "Gemini API key"),
        ("GOOGLE_API_KEY", "Google API key"),
        ("OPENAI_API_KEY", "OpenAI API key"),
        ("ANTHROPIC_API_KEY", "Anthropic API key"),
        ("OLLAMA_API_BASE", "Ollama API base URL"),
        ("ATELIER_LLM__PROVIDER", "LLM provider override"),
        ("ATELIER_LLM__MODEL", "LLM model override"),
        ("ATELIER_BUDGET__DEFAULT_BUDGET", "Default session budget"),
        ("ATELIER_STORAGE__BACKEND", "Session store backend (memory, sqlite)"),
        ("ATELIER_STORAGE__DIRECTORY", "Session store directory"),
        ("ATELIER_LOGGING__LEVEL", "Log level"),
    ]

    table = Table(title="Environment Variables")
    table.add_column("Variable", style="bold")
    table.add_column("Description")
    table.add_column("Status")

    for var, desc in env_vars:
        value = os.environ.get(var)
        if value:
            # Mask sensitive values
            if "KEY" in var:
                status = f"[green]Set[/] ({value[:8]}...)"
            else:
                status = f"[green]{value}[/]"
        else:
            status = "[dim]Not set[/]"

        table.add_row(var, desc, status)

    console.print(table)
