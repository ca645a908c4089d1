"""Retry policy: configuration and backoff scheduling.

RetryConfig is immutable. The transport swaps whole instances when the
policy changes, so a call always sees one consistent configuration.
"""

from __future__ import annotations

import random

from pydantic import BaseModel, ConfigDict, Field, model_validator

from notebook_cli.transport.classifier import ErrorKind

DEFAULT_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})

DEFAULT_RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.CONNECTION_REFUSED,
        ErrorKind.TIMEOUT,
        ErrorKind.NETWORK_UNREACHABLE,
        ErrorKind.CONNECTION_RESET,
    }
)


class RetryConfig(BaseModel):
    """Retry policy for transport calls.

    Attributes:
        max_retries: Retries after the first attempt (3 means up to 4 attempts)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, in seconds
        backoff_factor: Multiplier applied per attempt (> 1.0)
        jitter: Random perturbation fraction applied to each delay (0 disables)
        retryable_status: HTTP status codes treated as transient
        retryable_kinds: Network error kinds the policy retries

    Example:
        >>> config = RetryConfig(max_retries=5, base_delay=0.5)
        >>> backoff_delay(2, config.model_copy(update={"jitter": 0.0}))
        2.0
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=0.1, ge=0.0)
    max_delay: float = Field(default=5.0, ge=0.0)
    backoff_factor: float = Field(default=2.0, gt=1.0)
    jitter: float = Field(default=0.25, ge=0.0, le=1.0)
    retryable_status: frozenset[int] = DEFAULT_RETRYABLE_STATUS
    retryable_kinds: frozenset[ErrorKind] = DEFAULT_RETRYABLE_KINDS

    @model_validator(mode="after")
    def check_delay_bounds(self) -> RetryConfig:
        """Ensure the cap is not below the base delay."""
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")
        return self

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


DEFAULT_RETRY_CONFIG = RetryConfig()

NO_RETRY_CONFIG = RetryConfig(max_retries=0)


def backoff_delay(
    attempt: int,
    config: RetryConfig,
    rng: random.Random | None = None,
) -> float:
    """Delay to wait after the given (0-based) attempt failed.

    delay = min(max_delay, base_delay * backoff_factor ** attempt), then
    perturbed by +/- jitter and clamped to [0, max_delay].

    Args:
        attempt: Index of the attempt that just failed (first try is 0)
        config: Retry policy
        rng: Optional random source for jitter

    Returns:
        Delay in seconds
    """
    try:
        delay = min(config.max_delay, config.base_delay * config.backoff_factor ** attempt)
    except OverflowError:
        delay = config.max_delay

    if config.jitter > 0:
        source = rng or random
        delay += delay * config.jitter * source.uniform(-1.0, 1.0)

    return max(0.0, min(config.max_delay, delay))


def backoff_schedule(config: RetryConfig) -> list[float]:
    """Jitter-free delays for every retry the policy allows."""
    steady = config.model_copy(update={"jitter": 0.0})
    return [backoff_delay(attempt, steady) for attempt in range(config.max_retries)]
