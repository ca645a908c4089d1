"""Custom exceptions for Open Notebook CLI.

User-facing errors carry suggestions so the command layer can offer
targeted remediation. `from_transport_error` and `from_response` keep
network failures, missing resources and server errors apart.
"""

from __future__ import annotations

from notebook_cli.transport.classifier import ErrorKind
from notebook_cli.transport.degradation import Advisory, GracefulDegradation
from notebook_cli.transport.exceptions import (
    CancelledError as TransportCancelledError,
    HttpError,
    NetworkError,
    RetryExhaustedError,
    TimeoutError as TransportTimeoutError,
    TransportError,
)
from notebook_cli.transport.models import Response


class NotebookCliError(Exception):
    """Base exception for Open Notebook CLI errors.

    Attributes:
        message: Error message
        suggestions: Remediation hints shown under the message
        exit_code: Process exit code for this error
        advisory: Degradation advice, when the failure warrants one
    """

    default_suggestions: tuple[str, ...] = ()
    exit_code: int = 1

    def __init__(
        self,
        message: str,
        suggestions: list[str] | None = None,
        advisory: Advisory | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.suggestions = suggestions if suggestions else list(self.default_suggestions)
        self.advisory = advisory

    def render(self) -> str:
        """Return message, advisory and suggestions as display text."""
        lines = [self.message]
        if self.advisory is not None and self.advisory.message:
            lines.append(self.advisory.message)
        if self.suggestions:
            lines.append("Suggestions:")
            lines.extend(f"  • {suggestion}" for suggestion in self.suggestions)
        return "\n".join(lines)


class ConnectionError(NotebookCliError):
    """Error connecting to the Open Notebook API."""

    default_suggestions = (
        "Verify the Open Notebook API is running",
        "Check network connectivity to the API server",
        "Confirm the API URL: onb config show",
        "Diagnose connectivity: onb diagnose",
    )


class TimeoutError(NotebookCliError):
    """Operation timed out."""

    default_suggestions = (
        "Try increasing the timeout with --timeout or OPEN_NOTEBOOK_TIMEOUT",
        "Check whether the server is under heavy load",
    )


class CancelledError(NotebookCliError):
    """Operation was cancelled before completing."""

    exit_code = 130


class AuthenticationError(NotebookCliError):
    """Authentication failed."""

    default_suggestions = (
        "Check the password with: echo $OPEN_NOTEBOOK_PASSWORD",
        "Verify API authentication is enabled on the server",
    )


class NotFoundError(NotebookCliError):
    """Requested resource does not exist."""

    default_suggestions = (
        "Verify the resource exists",
        "Check the resource ID and spelling",
        "List available resources first",
    )


class ServerError(NotebookCliError):
    """Server failed to process the request."""

    default_suggestions = (
        "Check Open Notebook server status",
        "Inspect the server logs for detailed errors",
        "Try the operation again later",
    )


class ApiError(NotebookCliError):
    """API returned an error response."""

    def __init__(self, status_code: int, message: str, suggestions: list[str] | None = None) -> None:
        """Initialize with HTTP status code and message."""
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}", suggestions)


class ValidationError(NotebookCliError):
    """Invalid input or configuration."""

    exit_code = 2


class ConfigError(NotebookCliError):
    """Configuration could not be loaded."""

    exit_code = 2

    default_suggestions = (
        "Check your configuration files",
        "Verify OPEN_NOTEBOOK_* environment variables",
        "Create a template with: onb config init",
    )


def _error_message(response: Response) -> str:
    """Extract an error message from an API error body."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            value = data.get(key)
            if isinstance(value, dict):
                return str(value.get("message", value))
            if value:
                return str(value)
    text = response.text.strip()
    return text[:200] if text else "Unknown error"


def from_response(response: Response) -> NotebookCliError | None:
    """Translate an error response into a CLI error.

    Returns:
        None for 2xx/3xx responses, otherwise the matching error
    """
    if response.ok:
        return None
    message = _error_message(response)
    status = response.status_code
    if status in (401, 403):
        return AuthenticationError(f"Authentication failed (HTTP {status}): {message}")
    if status == 404:
        return NotFoundError(f"Resource not found: {message}")
    if status >= 500:
        return ServerError(f"Server error (HTTP {status}): {message}")
    return ApiError(status, message)


def from_transport_error(
    error: TransportError,
    api_url: str,
    degradation: GracefulDegradation | None = None,
) -> NotebookCliError:
    """Translate a transport failure into a CLI error with guidance.

    Args:
        error: Failure raised by the transport
        api_url: Configured API URL, quoted in the message
        degradation: Advisor used to attach a fallback recommendation

    Returns:
        CLI error to display
    """
    advisor = degradation or GracefulDegradation()

    if isinstance(error, TransportCancelledError):
        return CancelledError("Operation cancelled")

    if isinstance(error, RetryExhaustedError):
        translated = from_response(error.response) or ServerError(str(error))
        translated.message = f"{translated.message} (gave up after {error.attempts} attempts)"
        return translated

    if isinstance(error, HttpError):
        return from_response(error.response) or ApiError(error.response.status_code, str(error))

    if isinstance(error, TransportTimeoutError):
        return TimeoutError(
            f"Request to {api_url} timed out: {error.message}",
            advisory=advisor.advise(error),
        )

    if isinstance(error, NetworkError):
        suggestions = None
        if error.kind is ErrorKind.DNS_RESOLUTION:
            suggestions = [
                "Check the host name in the API URL: onb config show",
                "Verify your DNS settings",
                "Diagnose connectivity: onb diagnose",
            ]
        return ConnectionError(
            f"Cannot connect to Open Notebook API at {api_url}",
            suggestions,
            advisory=advisor.advise(error),
        )

    return NotebookCliError(f"Request failed: {error}")
