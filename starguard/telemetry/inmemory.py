"""In-memory telemetry backend.

Keeps counters and gauges in dictionaries so the CLI can print a run summary
and tests can assert on what the orchestrator recorded.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from starguard.telemetry.base import Labels


@dataclass
class InMemoryTelemetry:
    """Counters and gauges kept in memory."""

    counters: Counter[str] = field(default_factory=Counter)
    gauges: dict[str, float] = field(default_factory=dict)

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        self.counters[self._make_key(name, labels)] += value

    def gauge(self, name: str, value: float, labels: Labels = ()) -> None:
        self.gauges[self._make_key(name, labels)] = value

    def _make_key(self, name: str, labels: Labels) -> str:
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in labels)
        return f"{name}{{{label_str}}}"

    def get_counter(self, name: str, labels: Labels = ()) -> int:
        return int(self.counters[self._make_key(name, labels)])

    def get_gauge(self, name: str, labels: Labels = ()) -> float | None:
        return self.gauges.get(self._make_key(name, labels))

    def reset(self) -> None:
        self.counters.clear()
        self.gauges.clear()
