"""Configuration management for Open Notebook CLI.

Implements multi-level configuration with precedence:
1. CLI arguments (highest priority)
2. Environment variables (OPEN_NOTEBOOK_* prefix)
3. Explicit config file (--config)
4. Project config (./.open-notebook.yaml)
5. Global config (~/.open-notebook/config.yaml)
6. Built-in defaults (lowest priority)
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, field_validator

from notebook_cli.transport.retry import DEFAULT_RETRYABLE_STATUS, RetryConfig

GLOBAL_CONFIG_PATH = Path.home() / ".open-notebook" / "config.yaml"
PROJECT_CONFIG_NAME = ".open-notebook.yaml"


class ApiConfig(BaseModel):
    """API connection configuration."""

    url: str = Field(default="http://localhost:5055")
    timeout: int = Field(default=300, ge=1, le=3600)
    verify_ssl: bool = True

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")


class RetrySettings(BaseModel):
    """Retry policy settings."""

    max_retries: int = Field(default=3, ge=0, le=10)
    base_delay: float = Field(default=0.1, ge=0.0)
    max_delay: float = Field(default=5.0, ge=0.0)
    backoff_factor: float = Field(default=2.0, gt=1.0)
    jitter: float = Field(default=0.25, ge=0.0, le=1.0)
    retryable_status: list[int] = Field(
        default_factory=lambda: sorted(DEFAULT_RETRYABLE_STATUS)
    )

    def to_retry_config(self) -> RetryConfig:
        """Build the transport retry policy.

        Raises:
            ValueError: If the settings are inconsistent (e.g. max_delay < base_delay)
        """
        return RetryConfig(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            backoff_factor=self.backoff_factor,
            jitter=self.jitter,
            retryable_status=frozenset(self.retryable_status),
        )


class AuthConfig(BaseModel):
    """Authentication configuration."""

    password: str | None = None
    token: str | None = None

    @property
    def bearer(self) -> str | None:
        """Credential sent as bearer token (explicit token wins)."""
        return self.token or self.password


class OutputConfig(BaseModel):
    """Output formatting configuration."""

    format: Literal["json", "table", "yaml"] = "table"
    verbose: bool = False


class Config(BaseModel):
    """Complete CLI configuration."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @classmethod
    def load(
        cls,
        config_path: Path | None = None,
        skip_global: bool = False,
        skip_project: bool = False,
    ) -> Config:
        """Load configuration with precedence: env > explicit > project > global > defaults.

        Args:
            config_path: Optional explicit config file path
            skip_global: Skip loading global config
            skip_project: Skip loading project config

        Returns:
            Loaded and merged configuration

        Raises:
            ValueError: If config file is invalid
        """
        config_data: dict[str, Any] = {}

        # 1. Load global config (~/.open-notebook/config.yaml)
        if not skip_global and GLOBAL_CONFIG_PATH.exists():
            config_data = cls._load_yaml_file(GLOBAL_CONFIG_PATH)

        # 2. Load project config (./.open-notebook.yaml)
        if not skip_project and not config_path:
            project_config_path = Path.cwd() / PROJECT_CONFIG_NAME
            if project_config_path.exists():
                project_data = cls._load_yaml_file(project_config_path)
                config_data = cls._deep_merge(config_data, project_data)

        # 3. Load explicit config file if provided
        if config_path:
            if not config_path.exists():
                raise ValueError(f"Config file not found: {config_path}")
            explicit_data = cls._load_yaml_file(config_path)
            config_data = cls._deep_merge(config_data, explicit_data)

        # 4. Load environment variables (override files)
        env_overrides = cls._load_from_env()
        config_data = cls._deep_merge(config_data, env_overrides)

        # 5. Substitute environment variables in values
        config_data = cls._substitute_env_vars(config_data)

        # 6. Create Config instance with validation
        try:
            return cls(**config_data)
        except Exception as e:
            raise ValueError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> Config:
        """Parse one config file as written, without env overrides or ${VAR} expansion.

        Raises:
            ValueError: If the file is missing, unreadable or invalid
        """
        if not path.exists():
            raise ValueError(f"Config file not found: {path}")
        data = cls._load_yaml_file(path)
        try:
            return cls(**data)
        except Exception as e:
            raise ValueError(f"Invalid configuration: {e}") from e

    @staticmethod
    def _load_yaml_file(path: Path) -> dict[str, Any]:
        """Load and parse YAML file.

        Args:
            path: Path to YAML file

        Returns:
            Parsed YAML data (empty dict for an empty file)

        Raises:
            ValueError: If file is invalid YAML or unreadable
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
        except OSError as e:
            raise ValueError(f"Failed to read {path}: {e}") from e

    @staticmethod
    def _load_from_env() -> dict[str, Any]:
        """Load configuration from environment variables.

        - OPEN_NOTEBOOK_API_URL -> api.url
        - OPEN_NOTEBOOK_TIMEOUT -> api.timeout
        - OPEN_NOTEBOOK_RETRY_COUNT -> retry.max_retries
        - OPEN_NOTEBOOK_PASSWORD -> auth.password
        - etc.

        Returns:
            Nested dict of overrides for the variables that are set
        """
        env_mapping = {
            # API configuration
            "OPEN_NOTEBOOK_API_URL": ["api", "url"],
            "OPEN_NOTEBOOK_TIMEOUT": ["api", "timeout"],
            "OPEN_NOTEBOOK_VERIFY_SSL": ["api", "verify_ssl"],
            # Retry policy
            "OPEN_NOTEBOOK_RETRY_COUNT": ["retry", "max_retries"],
            # Authentication
            "OPEN_NOTEBOOK_PASSWORD": ["auth", "password"],
            "OPEN_NOTEBOOK_TOKEN": ["auth", "token"],
            # Output
            "OPEN_NOTEBOOK_OUTPUT": ["output", "format"],
            "OPEN_NOTEBOOK_VERBOSE": ["output", "verbose"],
        }

        result: dict[str, Any] = {}
        for env_var, path in env_mapping.items():
            value = os.getenv(env_var)
            if value is not None:
                # Convert string values to appropriate types
                converted_value = Config._convert_env_value(value, path)
                Config._set_nested(result, path, converted_value)

        return result

    @staticmethod
    def _convert_env_value(value: str, path: list[str]) -> Any:
        """Convert environment variable string to appropriate type.

        Args:
            value: String value from environment
            path: Config path for type inference

        Returns:
            Converted value (pydantic reports anything left unconvertible)
        """
        # Boolean conversion
        if path[-1] in ("verify_ssl", "verbose"):
            return value.lower() in ("true", "1", "yes", "on")

        # Integer conversion
        if path[-1] in ("timeout", "max_retries"):
            try:
                return int(value)
            except ValueError:
                return value

        return value

    @staticmethod
    def _substitute_env_vars(data: Any) -> Any:
        """Substitute ${VAR_NAME} references in string values."""
        if isinstance(data, dict):
            return {k: Config._substitute_env_vars(v) for k, v in data.items()}
        if isinstance(data, list):
            return [Config._substitute_env_vars(item) for item in data]
        if isinstance(data, str):
            # Simple substitution for ${VAR_NAME}
            def replace_env(match: re.Match[str]) -> str:
                return os.getenv(match.group(1), match.group(0))
            return re.sub(r"\$\{([A-Z_][A-Z0-9_]*)\}", replace_env, data)
        return data

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary (takes precedence)

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = Config._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    @staticmethod
    def _set_nested(data: dict[str, Any], path: list[str], value: Any) -> None:
        for key in path[:-1]:
            if key not in data:
                data[key] = {}
            data = data[key]
        data[path[-1]] = value

    def to_dict(self, redact: bool = True) -> dict[str, Any]:
        """Convert config to dictionary.

        Args:
            redact: Replace credentials with "***"

        Returns:
            Configuration as dictionary
        """
        data = self.model_dump()
        if redact:
            for key in ("password", "token"):
                if data["auth"].get(key):
                    data["auth"][key] = "***"
        return data

    def to_yaml(self, redact: bool = True) -> str:
        return yaml.dump(self.to_dict(redact=redact), default_flow_style=False, sort_keys=False)

    @classmethod
    def get_template(cls) -> str:
        """Get configuration file template.

        Returns:
            YAML template with comments
        """
        return """# Open Notebook CLI Configuration

# API Connection
api:
  url: http://localhost:5055
  timeout: 300  # overall deadline per call, seconds
  verify_ssl: true

# Retry policy
retry:
  max_retries: 3
  base_delay: 0.1
  max_delay: 5.0
  backoff_factor: 2.0
  jitter: 0.25
  retryable_status: [408, 429, 500, 502, 503, 504]

# Authentication (optional)
auth:
  password: ${OPEN_NOTEBOOK_PASSWORD}

# Output Preferences
output:
  format: table  # table | json | yaml
  verbose: false
"""

    def validate_config(self) -> list[str]:
        """Validate configuration and return any warnings.

        Returns:
            List of validation warnings (empty if valid)
        """
        warnings: list[str] = []

        # Check for insecure settings
        if not self.api.verify_ssl and self.api.url.startswith("https://"):
            warnings.append(
                "SSL verification is disabled for HTTPS URL. "
                "This is insecure and not recommended for production."
            )

        # Check for plaintext secrets
        for name, value in (("Password", self.auth.password), ("Token", self.auth.token)):
            if value and not value.startswith("${"):
                warnings.append(
                    f"{name} appears to be hardcoded. "
                    "Use an environment variable reference: ${OPEN_NOTEBOOK_PASSWORD}"
                )

        # Check for reasonable timeout values
        if self.api.timeout < 5:
            warnings.append(
                f"API timeout is very low ({self.api.timeout}s). "
                "This may cause frequent timeouts."
            )

        if self.retry.max_delay < self.retry.base_delay:
            warnings.append(
                f"retry.max_delay ({self.retry.max_delay}s) is below "
                f"retry.base_delay ({self.retry.base_delay}s)."
            )

        return warnings
