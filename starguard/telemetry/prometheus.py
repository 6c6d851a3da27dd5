"""Prometheus metrics backend for long-running enforcement.

Exposes the enforcer's counters and gauges at ``/metrics`` for scraping.

Usage:
    telemetry = PrometheusTelemetry(PrometheusConfig(port=9464))
    telemetry.start()
    telemetry.incr("policy_failures_total", labels=(("policy", "GitHub Actions"),))

    # Metrics available at http://127.0.0.1:9464/metrics
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

from starguard.telemetry.base import Labels

METRIC_PREFIX = "starguard"


@dataclass
class PrometheusConfig:
    """Where the metrics endpoint listens."""

    port: int = 9464
    host: str = "127.0.0.1"  # localhost only by default


class PrometheusTelemetry:
    """Prometheus-backed telemetry with a ``/metrics`` endpoint.

    Standard enforcement metrics are registered up front; any other name is
    created on first use with the label names it was first called with.
    Each instance owns its registry.
    """

    def __init__(
        self,
        config: PrometheusConfig | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self._config = config or PrometheusConfig()
        self.registry = registry or CollectorRegistry()
        self._metrics: dict[str, Counter | Gauge] = {}
        self._started = False
        self._register_standard_metrics()

    def _register_standard_metrics(self) -> None:
        for name, doc in (
            ("enforce_runs_total", "Completed enforcement passes"),
            ("repos_enforced_total", "Repositories whose policies ran without error"),
            ("repo_errors_total", "Repositories whose policy run failed"),
            ("installation_errors_total", "Installations whose enforcement failed"),
        ):
            self._metrics[name] = Counter(_full_name(name), doc, registry=self.registry)
        self._metrics["policy_failures_total"] = Counter(
            _full_name("policy_failures_total"),
            "Failed policy checks",
            labelnames=["policy"],
            registry=self.registry,
        )
        self._metrics["policy_failed_repos"] = Gauge(
            _full_name("policy_failed_repos"),
            "Repositories failing each policy in the latest pass",
            labelnames=["policy"],
            registry=self.registry,
        )

    def start(self) -> None:
        """Start the metrics HTTP server once."""
        if self._started:
            return
        try:
            start_http_server(self._config.port, addr=self._config.host, registry=self.registry)
        except OSError as e:
            logger.error(f"Failed to start Prometheus server: {e}")
            return
        self._started = True
        logger.info(
            f"Prometheus metrics server started on "
            f"http://{self._config.host}:{self._config.port}/metrics"
        )

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        metric = self._metrics.get(name)
        if metric is None:
            metric = Counter(
                _full_name(name),
                f"Counter: {name}",
                labelnames=[k for k, _ in labels],
                registry=self.registry,
            )
            self._metrics[name] = metric
        if labels:
            metric.labels(**dict(labels)).inc(value)
        else:
            metric.inc(value)

    def gauge(self, name: str, value: float, labels: Labels = ()) -> None:
        metric = self._metrics.get(name)
        if metric is None:
            metric = Gauge(
                _full_name(name),
                f"Gauge: {name}",
                labelnames=[k for k, _ in labels],
                registry=self.registry,
            )
            self._metrics[name] = metric
        if labels:
            metric.labels(**dict(labels)).set(value)
        else:
            metric.set(value)


def _full_name(name: str) -> str:
    return f"{METRIC_PREFIX}_{name}"
