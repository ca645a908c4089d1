"""Configuration management commands.

This module provides CLI commands for configuration management:
- show: Display the effective configuration
- init: Write a template configuration file
- validate: Check a configuration file for errors and risky settings
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from notebook_cli.config import GLOBAL_CONFIG_PATH, PROJECT_CONFIG_NAME, Config
from notebook_cli.container import get_config
from notebook_cli.formatters import format_json, format_success, format_warning, format_yaml

app = typer.Typer(
    name="config",
    help="Manage CLI configuration",
    no_args_is_help=True,
)

console = Console()


@app.command()
def show(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output in JSON format",
        ),
    ] = False,
    yaml_output: Annotated[
        bool,
        typer.Option(
            "--yaml",
            help="Output in YAML format",
        ),
    ] = False,
) -> None:
    """Display the effective configuration.

    Credentials are always redacted. Configuration precedence:
    1. Command-line options (--api-url, --timeout)
    2. Environment variables (OPEN_NOTEBOOK_*)
    3. Config files (--config, ./.open-notebook.yaml, ~/.open-notebook/config.yaml)
    4. Defaults

    Examples:
        # Show configuration as table
        onb config show

        # Show configuration as JSON
        onb config show --json
    """
    try:
        config = get_config()
    except ValueError as e:
        console.print(f"[red]Error reading configuration:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    data = config.to_dict(redact=True)

    if json_output:
        print(format_json(data))
        return
    if yaml_output:
        print(format_yaml(data), end="")
        return

    console.print("[bold]Current Configuration[/bold]\n")
    for section, values in data.items():
        table = Table(title=f"{section.title()} Settings", show_header=True)
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        for key, value in values.items():
            table.add_row(key, "Not set" if value is None else str(value))
        console.print(table)
        console.print()

    console.print("[dim]Set via environment variables:[/dim]")
    console.print("[dim]  OPEN_NOTEBOOK_API_URL, OPEN_NOTEBOOK_TIMEOUT,[/dim]")
    console.print("[dim]  OPEN_NOTEBOOK_RETRY_COUNT, OPEN_NOTEBOOK_PASSWORD[/dim]")


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing configuration file",
        ),
    ] = False,
    project: Annotated[
        bool,
        typer.Option(
            "--project",
            "-p",
            help=f"Write ./{PROJECT_CONFIG_NAME} instead of the global file",
        ),
    ] = False,
) -> None:
    """Initialize a configuration file from the template.

    Examples:
        # Create ~/.open-notebook/config.yaml
        onb config init

        # Create a project config in the current directory
        onb config init --project
    """
    config_file = Path.cwd() / PROJECT_CONFIG_NAME if project else GLOBAL_CONFIG_PATH

    if config_file.exists() and not force:
        console.print(
            f"[yellow]Configuration file already exists:[/yellow] {config_file}\n"
            "Use --force to overwrite."
        )
        raise typer.Exit(0)

    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(Config.get_template())
    except OSError as e:
        console.print(f"[red]Error creating configuration file:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    console.print(format_success(f"Configuration file created: {config_file}\n"))
    console.print("[bold]To use environment variables (recommended):[/bold]")
    console.print("[dim]export OPEN_NOTEBOOK_API_URL=http://localhost:5055[/dim]")
    console.print("[dim]export OPEN_NOTEBOOK_PASSWORD=your-password[/dim]")


@app.command()
def validate(
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file to validate",
        ),
    ] = None,
) -> None:
    """Validate a configuration file.

    Checks syntax, value types and ranges, and warns about risky settings
    such as hardcoded credentials. Without --config the project file is
    checked first, then the global one.

    Examples:
        # Validate default config
        onb config validate

        # Validate specific config file
        onb config validate --config ./notebook.yaml
    """
    if config_path is None:
        candidates = [Path.cwd() / PROJECT_CONFIG_NAME, GLOBAL_CONFIG_PATH]
        config_path = next((p for p in candidates if p.exists()), None)
        if config_path is None:
            console.print(
                "[yellow]No configuration file found.[/yellow]\n"
                f"Expected at: {GLOBAL_CONFIG_PATH}\n"
                "Run 'onb config init' to create one."
            )
            raise typer.Exit(0)

    console.print(f"[bold]Validating:[/bold] {config_path}\n")

    try:
        config = Config.from_file(config_path)
    except ValueError as e:
        console.print(f"[red]✗ Configuration is invalid:[/red]\n  {escape(str(e))}")
        raise typer.Exit(1)

    warnings = config.validate_config()
    for warning in warnings:
        console.print(format_warning(warning))

    if warnings:
        console.print(f"\n[yellow]Configuration is valid with {len(warnings)} warning(s)[/yellow]")
    else:
        console.print(format_success("Configuration is valid"))
