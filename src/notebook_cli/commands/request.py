"""Raw API request command.

Sends one call through the shared transport, so retries, classification
and degradation advice apply exactly as they do for resource commands.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from notebook_cli.container import get_config, get_degradation, get_transport
from notebook_cli.exceptions import (
    ConfigError,
    NotebookCliError,
    ValidationError,
    from_response,
    from_transport_error,
)
from notebook_cli.formatters import format_error, format_response
from notebook_cli.transport.exceptions import TransportError
from notebook_cli.transport.models import HTTP_METHODS, Request

console = Console()


def _fail(error: NotebookCliError) -> NoReturn:
    console.print(format_error(escape(error.render())))
    raise typer.Exit(error.exit_code)


def _parse_data(data: str | None) -> Any:
    if data is None:
        return None
    try:
        return json.loads(data)
    except ValueError as e:
        _fail(ValidationError(f"Invalid JSON in --data: {e}"))


def request(
    method: Annotated[str, typer.Argument(help="HTTP method (GET, POST, PUT, DELETE)")],
    path: Annotated[str, typer.Argument(help="API path, e.g. /notebooks")],
    data: Annotated[
        str | None,
        typer.Option("--data", "-d", help="JSON request body"),
    ] = None,
    stream: Annotated[
        bool,
        typer.Option("--stream", "-s", help="Read the response as Server-Sent Events"),
    ] = False,
    include_status: Annotated[
        bool,
        typer.Option("--include", "-i", help="Print the status code before the body"),
    ] = False,
) -> None:
    """Send a raw request to the Open Notebook API.

    Error responses and connection failures are reported with suggestions;
    network failures also say which fallback mode applies.

    Examples:
        # List notebooks
        onb request GET /notebooks

        # Create a note
        onb request POST /notes --data '{"title": "Idea", "content": "..."}'

        # Stream a chat answer
        onb request POST /chat/execute --stream --data '{"message": "hi"}'
    """
    verb = method.upper()
    if verb not in HTTP_METHODS:
        _fail(
            ValidationError(
                f"Unsupported method: {method}",
                [f"Use one of: {', '.join(sorted(HTTP_METHODS))}"],
            )
        )

    body = _parse_data(data)

    try:
        api_url = get_config().api.url
        transport = get_transport()
    except ValueError as e:
        _fail(ConfigError(str(e)))

    try:
        if stream:
            with transport.stream(path, body, method=verb) as events:
                for payload in events:
                    print(payload.decode("utf-8", errors="replace"), flush=True)
            return

        response = transport.execute(Request(verb, path, body=body))
    except TransportError as e:
        _fail(from_transport_error(e, api_url, get_degradation()))

    if include_status:
        console.print(f"[bold]HTTP {response.status_code}[/bold]")

    error = from_response(response)
    if error is not None:
        _fail(error)

    if response.body:
        print(format_response(response))
