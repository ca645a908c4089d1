"""Connectivity diagnostics command.

Runs DNS, TCP and HTTP probes against the configured API URL (or an
explicit one) and reports which layer fails.
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from notebook_cli.container import get_config, get_diagnostics
from notebook_cli.exceptions import ConfigError
from notebook_cli.formatters import (
    format_diagnostics,
    format_error,
    format_json,
    format_success,
    format_warning,
    format_yaml,
)

console = Console()


def diagnose(
    url: Annotated[
        str | None,
        typer.Option(
            "--url",
            "-u",
            help="Target URL (default: configured API URL)",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output in JSON format",
        ),
    ] = False,
) -> None:
    """Diagnose connectivity to the Open Notebook API.

    Every probe runs even when an earlier one fails, so the report shows
    whether name resolution, the TCP connection or the HTTP exchange is
    the broken layer. Exits with code 1 when any probe fails.

    Examples:
        # Diagnose the configured API
        onb diagnose

        # Diagnose another server as JSON
        onb diagnose --url https://notebook.example.com --json
    """
    try:
        config = get_config()
    except ValueError as e:
        error = ConfigError(str(e))
        console.print(format_error(escape(error.render())))
        raise typer.Exit(error.exit_code)

    result = get_diagnostics().diagnose_connectivity(url or config.api.url)

    if json_output or config.output.format == "json":
        # Use print() for JSON to avoid Rich's text wrapping
        print(format_json(result.to_dict()))
    elif config.output.format == "yaml":
        print(format_yaml(result.to_dict()), end="")
    else:
        print(format_diagnostics(result), end="")
        if result.all_passed:
            console.print(format_success("All connectivity checks passed"))
        else:
            failed = ", ".join(result.failed_probes)
            console.print(format_warning(f"Failed checks: {failed}"))

    if not result.all_passed:
        raise typer.Exit(1)
