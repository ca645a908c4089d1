"""Main CLI entry point for Open Notebook."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from notebook_cli import __version__
from notebook_cli.commands import config
from notebook_cli.commands.diagnose import diagnose
from notebook_cli.commands.request import request
from notebook_cli.container import get_config, set_cli_options
from notebook_cli.logging_config import configure_logging

app = typer.Typer(
    name="onb",
    help="Open Notebook CLI - command-line access to an Open Notebook server",
    no_args_is_help=True,
    add_completion=False,
)

# Register command groups
app.add_typer(config.app, name="config")
app.command(name="diagnose")(diagnose)
app.command(name="request")(request)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Open Notebook CLI version: {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Log retries, probes and request timings to stderr",
        ),
    ] = False,
    api_url: Annotated[
        str | None,
        typer.Option(
            "--api-url",
            help="Open Notebook API URL (overrides config and OPEN_NOTEBOOK_API_URL)",
        ),
    ] = None,
    timeout: Annotated[
        int | None,
        typer.Option(
            "--timeout",
            "-t",
            help="Overall request deadline in seconds",
            min=1,
        ),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a configuration file",
        ),
    ] = None,
) -> None:
    """
    Open Notebook CLI - Command-line interface for Open Notebook.

    Requests are retried with exponential backoff on transient failures,
    and connection problems come with a diagnosis and suggestions.

    Use 'onb COMMAND --help' for help with specific commands.
    """
    set_cli_options(
        config_path=config_path,
        api_url=api_url,
        timeout=timeout,
        verbose=verbose,
    )
    if not verbose:
        try:
            verbose = get_config().output.verbose
        except ValueError:
            # Commands that need the config report the error themselves
            verbose = False
    configure_logging(verbose=verbose)


def cli_main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
