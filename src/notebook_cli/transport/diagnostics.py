"""Network connectivity diagnostics.

Runs independent probes (DNS, TCP, HTTP) against a target URL so a user can
see which layer fails when the API is unreachable. Every probe runs even if
another fails first, and each carries its own timeout so a hung probe
cannot stall the report.
"""

from __future__ import annotations

import socket
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping
from urllib.parse import urlsplit

import requests
import structlog

from notebook_cli.transport.classifier import ErrorClassifier, default_classifier

logger = structlog.get_logger()

DNS_TEST = "dns_test"
TCP_TEST = "tcp_test"
HTTP_TEST = "http_test"

# Extra wait on top of a probe's own timeout before it is reported as hung
PROBE_GRACE = 0.5


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one diagnostic probe.

    Attributes:
        success: Whether the probe reached its goal
        detail: Human-readable explanation (never empty)
        duration: Probe wall time in seconds
        data: Probe-specific extras (resolved IPs, status code, error kind)
    """

    success: bool
    detail: str
    duration: float
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "detail": self.detail,
            "duration": round(self.duration, 4),
            **self.data,
        }


@dataclass(frozen=True)
class DiagnosticResult:
    """Merged report of one diagnostic run.

    Attributes:
        target: URL that was diagnosed
        probes: Probe name -> ProbeResult (read-only)
        total_duration: Wall time of the whole run in seconds
    """

    target: str
    probes: Mapping[str, ProbeResult]
    total_duration: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "probes", MappingProxyType(dict(self.probes)))

    def __getitem__(self, name: str) -> ProbeResult:
        return self.probes[name]

    def __contains__(self, name: object) -> bool:
        return name in self.probes

    def __iter__(self) -> Iterator[str]:
        return iter(self.probes)

    @property
    def all_passed(self) -> bool:
        return all(probe.success for probe in self.probes.values())

    @property
    def failed_probes(self) -> list[str]:
        return [name for name, probe in self.probes.items() if not probe.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            **{name: probe.to_dict() for name, probe in self.probes.items()},
            "total_duration": round(self.total_duration, 4),
        }


def _normalize_target(target: str) -> str:
    if "://" not in target:
        return f"http://{target}"
    return target


class NetworkDiagnostics:
    """Connectivity diagnostics for a target URL.

    Args:
        dns_timeout: Seconds allowed for name resolution
        tcp_timeout: Seconds allowed for the TCP connect
        http_timeout: Seconds allowed for the HTTP GET
        verify_ssl: Whether the HTTP probe verifies certificates
        classifier: Classifier used to label probe failures

    Example:
        >>> report = NetworkDiagnostics().diagnose_connectivity("http://localhost:5055")
        >>> report["http_test"].success
        True
    """

    def __init__(
        self,
        dns_timeout: float = 5.0,
        tcp_timeout: float = 5.0,
        http_timeout: float = 10.0,
        verify_ssl: bool = True,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        self.dns_timeout = dns_timeout
        self.tcp_timeout = tcp_timeout
        self.http_timeout = http_timeout
        self.verify_ssl = verify_ssl
        self.classifier = classifier or default_classifier

    def diagnose_connectivity(self, target: str) -> DiagnosticResult:
        """Run all probes against a target.

        Probes run concurrently and never short-circuit each other. A probe
        still running after its timeout (plus a short grace period) is
        reported as failed; its worker thread is abandoned.

        Args:
            target: URL (or bare host) to diagnose

        Returns:
            Fresh DiagnosticResult with dns_test, tcp_test and http_test
        """
        url = _normalize_target(target)
        start = time.monotonic()

        probes: dict[str, tuple[Callable[[str], ProbeResult], float]] = {
            DNS_TEST: (self.test_dns_resolution, self.dns_timeout),
            TCP_TEST: (self.test_tcp_connectivity, self.tcp_timeout),
            HTTP_TEST: (self.test_http_connectivity, self.http_timeout),
        }

        executor = ThreadPoolExecutor(max_workers=len(probes), thread_name_prefix="diagnostics")
        try:
            futures: dict[str, Future[ProbeResult]] = {
                name: executor.submit(probe, url) for name, (probe, _) in probes.items()
            }
            results = {
                name: self._collect(name, futures[name], timeout, start)
                for name, (_, timeout) in probes.items()
            }
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        total = time.monotonic() - start
        logger.debug(
            "Connectivity diagnostics completed",
            target=url,
            failed=[name for name, result in results.items() if not result.success],
            total_duration=total,
        )
        return DiagnosticResult(target=url, probes=results, total_duration=total)

    def _collect(
        self,
        name: str,
        future: Future[ProbeResult],
        timeout: float,
        start: float,
    ) -> ProbeResult:
        remaining = max(0.0, timeout + PROBE_GRACE - (time.monotonic() - start))
        try:
            return future.result(timeout=remaining)
        except FutureTimeoutError:
            logger.debug("Diagnostic probe hung", probe=name, timeout=timeout)
            return ProbeResult(
                success=False,
                detail=f"{name} did not finish within {timeout}s",
                duration=time.monotonic() - start,
                data={"error_kind": "timeout"},
            )
        except Exception as e:
            logger.warning("Diagnostic probe crashed", probe=name, error=str(e))
            return ProbeResult(
                success=False,
                detail=f"{type(e).__name__}: {e}",
                duration=time.monotonic() - start,
            )

    def test_dns_resolution(self, url: str) -> ProbeResult:
        """Resolve the target host."""
        start = time.monotonic()
        host = urlsplit(url).hostname
        if not host:
            return ProbeResult(False, f"Invalid target URL: {url!r}", 0.0)

        try:
            infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
        except (OSError, UnicodeError) as e:
            duration = time.monotonic() - start
            logger.debug("DNS resolution test failed", host=host, error=str(e))
            return ProbeResult(
                success=False,
                detail=f"Could not resolve {host}: {e}",
                duration=duration,
                data={"host": host},
            )

        duration = time.monotonic() - start
        ips = sorted({str(info[4][0]) for info in infos})
        logger.debug("DNS resolution test successful", host=host, ips=ips, duration=duration)
        return ProbeResult(
            success=True,
            detail=f"Resolved {host} to {', '.join(ips)}",
            duration=duration,
            data={"host": host, "ips": ips},
        )

    def test_tcp_connectivity(self, url: str) -> ProbeResult:
        """Open (and immediately close) a TCP connection to the target."""
        start = time.monotonic()
        parts = urlsplit(url)
        host = parts.hostname
        try:
            port = parts.port or (443 if parts.scheme == "https" else 80)
        except ValueError as e:
            return ProbeResult(False, f"Invalid port in {url!r}: {e}", 0.0)
        if not host:
            return ProbeResult(False, f"Invalid target URL: {url!r}", 0.0)

        try:
            with socket.create_connection((host, port), timeout=self.tcp_timeout):
                pass
        except OSError as e:
            duration = time.monotonic() - start
            kind = self.classifier.classify(e)
            logger.debug("TCP connectivity test failed", host=host, port=port, error=str(e))
            return ProbeResult(
                success=False,
                detail=f"TCP connect to {host}:{port} failed ({kind.value}): {e}",
                duration=duration,
                data={"host": host, "port": port, "error_kind": kind.value},
            )

        duration = time.monotonic() - start
        logger.debug("TCP connectivity test successful", host=host, port=port, duration=duration)
        return ProbeResult(
            success=True,
            detail=f"Connected to {host}:{port}",
            duration=duration,
            data={"host": host, "port": port},
        )

    def test_http_connectivity(self, url: str) -> ProbeResult:
        """Issue a bare GET; any HTTP response counts as reachable."""
        start = time.monotonic()
        try:
            response = requests.get(
                url,
                timeout=self.http_timeout,
                verify=self.verify_ssl,
                allow_redirects=False,
                stream=True,
            )
        except (requests.exceptions.RequestException, ValueError) as e:
            duration = time.monotonic() - start
            kind = self.classifier.classify(e)
            logger.debug("HTTP connectivity test failed", url=url, error=str(e))
            return ProbeResult(
                success=False,
                detail=f"HTTP request failed ({kind.value}): {e}",
                duration=duration,
                data={"error_kind": kind.value},
            )

        duration = time.monotonic() - start
        status_code = response.status_code
        response.close()
        logger.debug(
            "HTTP connectivity test successful",
            url=url,
            status=status_code,
            duration=duration,
        )
        return ProbeResult(
            success=True,
            detail=f"HTTP {status_code} received",
            duration=duration,
            data={"status_code": status_code},
        )
