"""Graceful degradation advice.

Maps a failure to the operating mode the CLI should fall back to. The
advisor never changes what the transport returns; a higher layer decides
whether to act on the recommendation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

import structlog

from notebook_cli.transport.classifier import ErrorClassifier, ErrorKind, default_classifier

logger = structlog.get_logger()


class FallbackMode(IntEnum):
    """Recommended operating mode, ordered by severity."""

    NORMAL = 0
    LIMITED = 1
    CACHED = 2
    OFFLINE = 3

    @property
    def label(self) -> str:
        return self.name.lower()


FALLBACK_BY_KIND: dict[ErrorKind, FallbackMode] = {
    ErrorKind.CONNECTION_REFUSED: FallbackMode.OFFLINE,
    ErrorKind.NETWORK_UNREACHABLE: FallbackMode.OFFLINE,
    ErrorKind.DNS_RESOLUTION: FallbackMode.OFFLINE,
    ErrorKind.TIMEOUT: FallbackMode.LIMITED,
    ErrorKind.CONNECTION_RESET: FallbackMode.CACHED,
}

FALLBACK_MESSAGES: dict[FallbackMode, str] = {
    FallbackMode.NORMAL: "",
    FallbackMode.LIMITED: (
        "API connectivity is degraded. Results may be incomplete and "
        "some operations may be slow or unavailable."
    ),
    FallbackMode.CACHED: (
        "Temporary connectivity issue. Serving cached data where available."
    ),
    FallbackMode.OFFLINE: (
        "API is unreachable. Switching to offline mode: no server reachable."
    ),
}


@dataclass(frozen=True)
class Advisory:
    """Fallback recommendation for one failure."""

    mode: FallbackMode
    message: str

    @property
    def degraded(self) -> bool:
        return self.mode is not FallbackMode.NORMAL


class GracefulDegradation:
    """Chooses a fallback mode for a failure.

    Evaluation is a pure lookup on the classified failure: the same error
    text always yields the same mode and message.

    Args:
        classifier: Classifier used to read the failure signature
    """

    def __init__(self, classifier: ErrorClassifier | None = None) -> None:
        self.classifier = classifier or default_classifier

    def evaluate_fallback(self, error: BaseException | str | None) -> FallbackMode:
        """Select the fallback mode for a failure.

        Args:
            error: Exception or raw error message (None means no failure)

        Returns:
            Recommended FallbackMode
        """
        if error is None:
            return FallbackMode.NORMAL

        kind = self.classifier.classify(error)
        mode = FALLBACK_BY_KIND.get(kind, FallbackMode.NORMAL)
        if mode is FallbackMode.NORMAL:
            logger.debug("No fallback mode for error", error=str(error), kind=kind.value)
        else:
            logger.warning(
                "Network degradation detected",
                mode=mode.label,
                kind=kind.value,
                error=str(error),
            )
        return mode

    def get_fallback_message(self, mode: FallbackMode) -> str:
        """User-facing explanation for a mode (empty for NORMAL)."""
        return FALLBACK_MESSAGES[mode]

    def advise(self, error: BaseException | str | None) -> Advisory:
        mode = self.evaluate_fallback(error)
        return Advisory(mode=mode, message=self.get_fallback_message(mode))
