"""Telemetry backends for enforcement runs."""

from starguard.telemetry.base import NullTelemetry, TelemetryPort
from starguard.telemetry.inmemory import InMemoryTelemetry
from starguard.telemetry.prometheus import PrometheusConfig, PrometheusTelemetry

__all__ = [
    "InMemoryTelemetry",
    "NullTelemetry",
    "PrometheusConfig",
    "PrometheusTelemetry",
    "TelemetryPort",
]
