"""Self-metrics describing the exporter's own collection cycles."""

from threading import Lock
from typing import Dict, Iterator, Optional

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from backup_exporter.model.scheduler import CycleOutcome


class ExporterStats:
    """Counts cycle outcomes and remembers the latest one.

    Rendered from its own registry, apart from the backup gauges.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._counts: Dict[str, int] = {}
        self._last: Optional[CycleOutcome] = None
        self._last_success: Optional[CycleOutcome] = None
        self._prom_registry = CollectorRegistry(auto_describe=False)
        self._prom_registry.register(self)

    def record(self, outcome: CycleOutcome) -> None:
        with self._lock:
            self._counts[outcome.result] = self._counts.get(outcome.result, 0) + 1
            if outcome.result != "skipped":
                self._last = outcome
            if outcome.result == "success":
                self._last_success = outcome

    @property
    def last_outcome(self) -> Optional[CycleOutcome]:
        return self._last

    @property
    def last_success(self) -> Optional[CycleOutcome]:
        return self._last_success

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def collect(self) -> Iterator:
        with self._lock:
            counts = dict(self._counts)
            last = self._last
            last_success = self._last_success

        cycles = CounterMetricFamily(
            "backup_exporter_cycles", "Collection cycles by result", labels=["result"]
        )
        for result in sorted(counts):
            cycles.add_metric([result], counts[result])
        yield cycles

        if last_success is not None:
            yield GaugeMetricFamily(
                "backup_exporter_last_success_timestamp_seconds",
                "Unix time the last successful collection cycle finished",
                value=last_success.finished_at.timestamp(),
            )
        if last is not None and last.duration_seconds is not None:
            yield GaugeMetricFamily(
                "backup_exporter_last_cycle_duration_seconds",
                "Duration of the last finished collection cycle",
                value=last.duration_seconds,
            )

    def render(self) -> bytes:
        """Return the Prometheus text exposition of the self-metrics."""
        return generate_latest(self._prom_registry)
