"""Dependency injection container for Open Notebook CLI.

This module provides a centralized container that manages object creation
and wiring for the command layer.

Design principles:
- Singleton instances for infrastructure (config, transport)
- Lazy initialization
- Easy to mock for testing

Factory functions:
- get_config(): Load and cache configuration
- get_transport(): Create and cache the HTTP transport
- get_diagnostics(): Create connectivity diagnostics (no caching)
- get_degradation(): Create the degradation advisor (no caching)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from notebook_cli.config import Config
from notebook_cli.transport.degradation import GracefulDegradation
from notebook_cli.transport.diagnostics import NetworkDiagnostics
from notebook_cli.transport.http import HttpTransport

# Global container state for testing/mocking
_overrides: dict[str, Any] = {}

# Values supplied on the command line, applied on top of the loaded config
_cli_options: dict[str, Any] = {}


def set_override(key: str, value: Any) -> None:
    """Override a container dependency for testing.

    Args:
        key: Dependency key ("config", "transport", "diagnostics", "degradation")
        value: Mock or test implementation

    Example:
        >>> mock_transport = Mock(spec=HttpTransport)
        >>> set_override("transport", mock_transport)
        >>> transport = get_transport()  # Returns mock
        >>> reset_container()
    """
    _overrides[key] = value


def clear_overrides() -> None:
    """Clear all dependency overrides.

    Should be called in test teardown to reset container state.
    """
    _overrides.clear()


def set_cli_options(
    config_path: Path | None = None,
    api_url: str | None = None,
    timeout: int | None = None,
    verbose: bool | None = None,
) -> None:
    """Record global command-line options for the next get_config() call.

    Args:
        config_path: Explicit config file (--config)
        api_url: API URL override (--api-url)
        timeout: Deadline override in seconds (--timeout)
        verbose: Force verbose output (--verbose)
    """
    _cli_options.clear()
    _cli_options.update(
        {
            "config_path": config_path,
            "api_url": api_url,
            "timeout": timeout,
            "verbose": verbose,
        }
    )
    get_config.cache_clear()
    get_transport.cache_clear()


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Load and cache configuration.

    Configuration is loaded once and cached for the lifetime of the process,
    then command-line options are applied on top.

    Returns:
        Configuration instance

    Raises:
        ValueError: If configuration files or values are invalid

    Example:
        >>> config = get_config()
        >>> print(config.api.url)
        'http://localhost:5055'
    """
    if "config" in _overrides:
        override = _overrides["config"]
        if not isinstance(override, Config):
            raise TypeError("Override for 'config' must be a Config instance")
        return override

    config = Config.load(config_path=_cli_options.get("config_path"))

    # Apply CLI overrides (highest precedence)
    updates: dict[str, Any] = {}
    if _cli_options.get("api_url"):
        updates["url"] = _cli_options["api_url"]
    if _cli_options.get("timeout"):
        updates["timeout"] = _cli_options["timeout"]
    if updates:
        api = config.api.model_validate({**config.api.model_dump(), **updates})
        config = config.model_copy(update={"api": api})
    if _cli_options.get("verbose"):
        config = config.model_copy(
            update={"output": config.output.model_copy(update={"verbose": True})}
        )
    return config


@lru_cache(maxsize=1)
def get_transport() -> HttpTransport:
    """Create and cache HTTP transport.

    Transport is created once and cached for connection pooling. The bearer
    credential and retry policy come from get_config().

    Returns:
        HTTP transport instance

    Example:
        >>> transport = get_transport()
        >>> response = transport.get("/notebooks")

    Note:
        For testing, use set_override("transport", mock_transport) to inject
        a mock transport.
    """
    if "transport" in _overrides:
        override = _overrides["transport"]
        if not isinstance(override, HttpTransport):
            raise TypeError("Override for 'transport' must be an HttpTransport instance")
        return override

    config = get_config()
    return HttpTransport(
        base_url=config.api.url,
        timeout=config.api.timeout,
        retry_config=config.retry.to_retry_config(),
        verify_ssl=config.api.verify_ssl,
        auth_token=config.auth.bearer,
    )


def get_diagnostics() -> NetworkDiagnostics:
    """Create connectivity diagnostics.

    Created on-demand (NOT cached). SSL verification follows get_config().

    Returns:
        Diagnostics instance
    """
    if "diagnostics" in _overrides:
        override = _overrides["diagnostics"]
        if not isinstance(override, NetworkDiagnostics):
            raise TypeError("Override for 'diagnostics' must be a NetworkDiagnostics instance")
        return override

    return NetworkDiagnostics(verify_ssl=get_config().api.verify_ssl)


def get_degradation() -> GracefulDegradation:
    """Create the degradation advisor."""
    if "degradation" in _overrides:
        override = _overrides["degradation"]
        if not isinstance(override, GracefulDegradation):
            raise TypeError("Override for 'degradation' must be a GracefulDegradation instance")
        return override

    return GracefulDegradation()


def reset_container() -> None:
    """Reset container state for testing.

    Clears all caches, overrides and command-line options. Should be called
    in test teardown.

    Example:
        >>> reset_container()
    """
    clear_overrides()
    _cli_options.clear()
    get_config.cache_clear()
    get_transport.cache_clear()
