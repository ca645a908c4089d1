"""Output formatters for Open Notebook CLI.

Provides multiple output formats:
- JSON: Machine-readable format for scripting
- YAML: Machine-readable, easier to read
- Table: Human-readable tabular format (default)

Features:
- Color auto-detection (disabled for piped output)
- Column selection for tables
- Connectivity reports and raw API responses
"""

from __future__ import annotations

import json
import os
import sys
from typing import Any

import yaml  # type: ignore[import-untyped]
from rich.console import Console
from rich.table import Table

from notebook_cli.transport.diagnostics import DiagnosticResult
from notebook_cli.transport.models import Response


def _should_use_color() -> bool:
    """Determine if color output should be used.

    Color is disabled when:
    - Output is piped (not a TTY)
    - NO_COLOR environment variable is set
    - TERM is set to "dumb"

    Returns:
        True if color should be used, False otherwise
    """
    # Check NO_COLOR environment variable
    if os.environ.get("NO_COLOR"):
        return False

    # Check TERM environment variable
    if os.environ.get("TERM") == "dumb":
        return False

    # Check if stdout is a TTY
    if not sys.stdout.isatty():
        return False

    return True


def _get_console(force_color: bool | None = None) -> Console:
    """Get a Rich Console with appropriate color settings.

    Args:
        force_color: If True, force color output. If False, disable color.
                    If None, auto-detect based on environment.

    Returns:
        Configured Console instance
    """
    if force_color is None:
        force_color = _should_use_color()

    return Console(
        force_terminal=force_color,
        no_color=not force_color,
        legacy_windows=False,
    )


def format_json(data: Any, pretty: bool = True) -> str:
    """Format data as JSON.

    Args:
        data: Data to format
        pretty: Whether to pretty-print (default: True)

    Returns:
        JSON-formatted string
    """
    if pretty:
        return json.dumps(data, indent=2, sort_keys=False, ensure_ascii=False)
    return json.dumps(data, ensure_ascii=False)


def format_yaml(data: Any) -> str:
    """Format data as YAML, keeping key order.

    Returns:
        YAML-formatted string
    """
    return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def format_table(
    data: list[dict[str, Any]],
    columns: list[str] | None = None,
    title: str | None = None,
    force_color: bool | None = None,
) -> str:
    """Format data as a rich table.

    Args:
        data: List of dictionaries to display as rows
        columns: Optional list of column keys to display (default: all keys)
        title: Optional table title
        force_color: Force color output (None for auto-detect)

    Returns:
        Formatted table string
    """
    if not data:
        return "No data to display"

    # Auto-detect columns if not specified
    if columns is None:
        columns = list(data[0].keys())
    else:
        # Filter to only columns that exist in data
        first_row_keys = set(data[0].keys())
        columns = [c for c in columns if c in first_row_keys]

    # Create table
    table = Table(title=title, show_header=True, header_style="bold magenta")

    # Add columns
    for col in columns:
        # Convert snake_case to Title Case
        table.add_column(col.replace("_", " ").title(), overflow="fold")

    # Add rows
    for row in data:
        table.add_row(*[_format_value(row.get(col)) for col in columns])

    # Capture output with appropriate console
    console = _get_console(force_color)
    with console.capture() as capture:
        console.print(table)

    return capture.get()


def format_diagnostics(result: DiagnosticResult, force_color: bool | None = None) -> str:
    """Format a connectivity report as a table, one row per probe.

    Args:
        result: Report returned by NetworkDiagnostics
        force_color: Force color output (None for auto-detect)

    Returns:
        Formatted table string
    """
    rows = [
        {
            "probe": name,
            "success": probe.success,
            # Probe durations are sub-second, milliseconds read better
            "duration": f"{probe.duration * 1000:.1f} ms",
            "detail": probe.detail,
        }
        for name, probe in result.probes.items()
    ]
    title = f"Connectivity: {result.target} ({result.total_duration * 1000:.0f} ms)"
    return format_table(rows, title=title, force_color=force_color)


def format_response(response: Response) -> str:
    """Format a response body for display.

    JSON bodies are pretty-printed, anything else is shown as text.
    """
    try:
        return format_json(response.json())
    except ValueError:
        # Not JSON
        return response.text


def _format_value(value: Any) -> str:
    """Format a value for display.

    Args:
        value: Value to format

    Returns:
        Formatted string
    """
    if value is None:
        return "[dim]N/A[/dim]"
    if isinstance(value, bool):
        return "[green]Yes[/green]" if value else "[red]No[/red]"
    if isinstance(value, (list, tuple)):
        if len(value) == 0:
            return "[dim]None[/dim]"
        return ", ".join(str(x) for x in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def format_success(message: str) -> str:
    """Format a success message.

    Args:
        message: Success message

    Returns:
        Formatted success message
    """
    return f"[green]✓[/green] {message}"


def format_error(message: str) -> str:
    """Format an error message.

    Args:
        message: Error message

    Returns:
        Formatted error message
    """
    return f"[red]✗[/red] {message}"


def format_warning(message: str) -> str:
    """Format a warning message.

    Args:
        message: Warning message

    Returns:
        Formatted warning message
    """
    return f"[yellow]⚠[/yellow] {message}"
