"""Network error classification.

Maps a raw transport failure to an ErrorKind and decides whether it is
worth retrying under a RetryConfig. Matching is heuristic: error messages
are not a stable contract across platforms, so the rules are kept as data
(CLASSIFICATION_RULES) and can be replaced without touching call sites.
"""

from __future__ import annotations

import re
import socket
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterator, Sequence

import requests
from urllib3.exceptions import NameResolutionError

if TYPE_CHECKING:
    from notebook_cli.transport.retry import RetryConfig


class ErrorKind(str, Enum):
    """Semantic kind of a network failure."""

    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    DNS_RESOLUTION = "dns_resolution"
    NETWORK_UNREACHABLE = "network_unreachable"
    CONNECTION_RESET = "connection_reset"
    UNKNOWN = "unknown"


# Kinds that are never retried, whatever the policy says
NEVER_RETRYABLE = frozenset({ErrorKind.DNS_RESOLUTION, ErrorKind.UNKNOWN})


@dataclass(frozen=True)
class ClassificationRule:
    """One matching rule.

    Attributes:
        kind: ErrorKind assigned when the rule matches
        patterns: Regular expressions searched in the lower-cased message
        exception_types: Exception types matched anywhere in the cause chain
    """

    kind: ErrorKind
    patterns: tuple[str, ...] = ()
    exception_types: tuple[type[BaseException], ...] = ()

    def matches_type(self, error: BaseException) -> bool:
        return bool(self.exception_types) and isinstance(error, self.exception_types)

    def matches_text(self, text: str) -> bool:
        return any(re.search(pattern, text) for pattern in self.patterns)


# Evaluated in order; first match wins
CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        ErrorKind.CONNECTION_REFUSED,
        patterns=(r"connection refused", r"actively refused"),
        exception_types=(ConnectionRefusedError,),
    ),
    ClassificationRule(
        ErrorKind.TIMEOUT,
        patterns=(r"timeout", r"timed out", r"deadline exceeded"),
        exception_types=(requests.exceptions.Timeout, socket.timeout),
    ),
    ClassificationRule(
        ErrorKind.DNS_RESOLUTION,
        patterns=(
            r"no such host",
            r"name resolution",
            r"name or service not known",
            r"nodename nor servname",
            r"failed to resolve",
            r"getaddrinfo failed",
            r"no address associated with hostname",
        ),
        exception_types=(socket.gaierror, NameResolutionError),
    ),
    ClassificationRule(
        ErrorKind.NETWORK_UNREACHABLE,
        patterns=(
            r"network (is )?unreachable",
            r"no route to host",
            r"host (is )?unreachable",
        ),
    ),
    ClassificationRule(
        ErrorKind.CONNECTION_RESET,
        patterns=(
            r"connection reset",
            r"broken pipe",
            r"connection aborted",
            r"remote end closed connection",
            r"\beof\b",
        ),
        exception_types=(ConnectionResetError, BrokenPipeError, ConnectionAbortedError),
    ),
)


def _iter_chain(error: BaseException) -> Iterator[BaseException]:
    """Yield the error and everything it wraps.

    Follows __cause__/__context__ and exception arguments, since requests
    and urllib3 carry the original socket error in args rather than in the
    exception chain.
    """
    seen: set[int] = set()
    pending: list[BaseException] = [error]
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        for linked in (current.__cause__, current.__context__):
            if linked is not None:
                pending.append(linked)
        for arg in current.args:
            if isinstance(arg, BaseException):
                pending.append(arg)
        reason = getattr(current, "reason", None)
        if isinstance(reason, BaseException):
            pending.append(reason)


class ErrorClassifier:
    """Classifies raw failures into ErrorKind values.

    Args:
        rules: Ordered classification rules (default: CLASSIFICATION_RULES)

    Example:
        >>> classifier = ErrorClassifier()
        >>> classifier.classify("dial tcp: connection refused")
        <ErrorKind.CONNECTION_REFUSED: 'connection_refused'>
    """

    def __init__(self, rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES) -> None:
        self.rules = tuple(rules)

    def classify(self, error: BaseException | str | None) -> ErrorKind:
        """Classify a failure.

        Structural matches on the exception chain take precedence over
        message text. Never raises.

        Args:
            error: Exception or raw error message

        Returns:
            Exactly one ErrorKind; UNKNOWN when nothing matches
        """
        if error is None:
            return ErrorKind.UNKNOWN

        if isinstance(error, BaseException):
            kind = getattr(error, "kind", None)
            if isinstance(kind, ErrorKind):
                return kind
            chain = list(_iter_chain(error))
            for rule in self.rules:
                if any(rule.matches_type(item) for item in chain):
                    return rule.kind
            text = " ".join(_safe_str(item) for item in chain).lower()
        else:
            text = str(error).lower()

        for rule in self.rules:
            if rule.matches_text(text):
                return rule.kind
        return ErrorKind.UNKNOWN

    def is_retryable(self, error: BaseException | str | None, config: RetryConfig) -> bool:
        """Decide whether a failure should be retried under a policy.

        DNS failures and unknown errors are never retried. Other kinds are
        retried only when the policy allows retries at all and lists the
        kind in `retryable_kinds`.
        """
        if error is None:
            return False
        kind = self.classify(error)
        if kind in NEVER_RETRYABLE:
            return False
        return config.max_retries > 0 and kind in config.retryable_kinds

    def is_retryable_status(self, status_code: int, config: RetryConfig) -> bool:
        return status_code in config.retryable_status


def _safe_str(error: BaseException) -> str:
    try:
        return str(error)
    except Exception:  # noqa: BLE001
        return type(error).__name__


default_classifier = ErrorClassifier()


def classify(error: BaseException | str | None) -> ErrorKind:
    """Classify a failure with the default rule set."""
    return default_classifier.classify(error)


def is_retryable(error: BaseException | str | None, config: RetryConfig) -> bool:
    """Retry decision for a failure with the default rule set."""
    return default_classifier.is_retryable(error, config)


def is_retryable_status(status_code: int, config: RetryConfig) -> bool:
    """Retry decision for an HTTP status code."""
    return default_classifier.is_retryable_status(status_code, config)
