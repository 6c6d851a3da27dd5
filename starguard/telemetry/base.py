"""Telemetry port protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

type Labels = tuple[tuple[str, str], ...]


@runtime_checkable
class TelemetryPort(Protocol):
    """Metric sink for enforcement runs.

    Counters track repositories enforced, policy failures and installation
    errors; gauges record the outcome of the latest run.
    """

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        """Increase a named counter by ``value``.

        Args:
            name: Metric name (e.g., "policy_failures_total")
            value: Amount to increment (default 1)
            labels: Optional label tuples (e.g., (("policy", "GitHub Actions"),))
        """

    def gauge(self, name: str, value: float, labels: Labels = ()) -> None:
        """Set a gauge value."""


class NullTelemetry:
    """Sink that drops every metric."""

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        return None

    def gauge(self, name: str, value: float, labels: Labels = ()) -> None:
        return None
