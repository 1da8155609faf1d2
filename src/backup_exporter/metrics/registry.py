"""Latest backup aggregates, exposed as Prometheus gauges."""

from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Iterator, List, Mapping, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily

from backup_exporter.model.aggregate import CycleSnapshot, PrefixAggregate
from backup_exporter.utils.misc import datetime_to_epoch_ms

BACKUP_COUNT = "number_of_dns_backups"
BUCKET_SIZE = "dns_backup_size_total"
BACKUP_SIZE = "dns_backup_size"
BACKUP_TIMESTAMP = "dns_backup_timestamp"

# name -> (help, label names); the names and labels are relied on by dashboards.
GAUGES: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    BACKUP_COUNT: ("total number of dns backups", ("bucket", "dns_name")),
    BUCKET_SIZE: ("total dns backup sizes", ("bucket",)),
    BACKUP_SIZE: ("dns backup size", ("bucket", "dns_name")),
    BACKUP_TIMESTAMP: ("dns backup timestamps", ("bucket", "dns_name", "backup_size")),
}


@dataclass(frozen=True)
class MetricSample:
    name: str
    labels: Mapping[str, str]
    value: float


@dataclass(frozen=True)
class _State:
    bucket_totals: Mapping[str, int] = field(default_factory=dict)
    prefixes: Mapping[Tuple[str, str], PrefixAggregate] = field(default_factory=dict)


class MetricsRegistry:
    """Holds the last published aggregates and renders them for scraping.

    The state is an immutable value replaced by a single assignment in
    :meth:`publish`, so :meth:`render` always sees one whole snapshot.
    Prefixes missing from a newer snapshot keep their previous samples until
    :meth:`clear` is called.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self) -> None:
        self._state = _State()
        self._write_lock = Lock()
        self._prom_registry = CollectorRegistry(auto_describe=False)
        self._prom_registry.register(self)

    def publish(self, snapshot: CycleSnapshot) -> None:
        """Replace every sample of the snapshot's bucket total and prefixes at once."""
        with self._write_lock:
            current = self._state
            bucket_totals = dict(current.bucket_totals)
            bucket_totals[snapshot.bucket] = snapshot.bucket_aggregate.total_size

            prefixes = dict(current.prefixes)
            for prefix, aggregate in snapshot.prefix_aggregates.items():
                prefixes[(snapshot.bucket, prefix)] = aggregate

            self._state = _State(bucket_totals=bucket_totals, prefixes=prefixes)

    def clear(self) -> None:
        """Forget every sample, including ones retained for vanished prefixes."""
        with self._write_lock:
            self._state = _State()

    def prefixes(self, bucket: str) -> List[str]:
        """Prefixes of ``bucket`` that currently have samples."""
        return sorted(prefix for b, prefix in self._state.prefixes if b == bucket)

    def samples(self) -> List[MetricSample]:
        """Flatten the current state into samples, ordered by metric then labels."""
        return [
            MetricSample(name=family.name, labels=dict(sample.labels), value=sample.value)
            for family in self.collect()
            for sample in family.samples
        ]

    def collect(self) -> Iterator[GaugeMetricFamily]:
        """prometheus_client collector hook."""
        state = self._state
        families = {
            name: GaugeMetricFamily(name, help_text, labels=list(labels))
            for name, (help_text, labels) in GAUGES.items()
        }

        for bucket in sorted(state.bucket_totals):
            families[BUCKET_SIZE].add_metric([bucket], state.bucket_totals[bucket])

        for (bucket, prefix) in sorted(state.prefixes):
            aggregate = state.prefixes[(bucket, prefix)]
            families[BACKUP_COUNT].add_metric([bucket, prefix], aggregate.count)
            families[BACKUP_SIZE].add_metric([bucket, prefix], aggregate.total_size)
            if aggregate.latest_timestamp is not None:
                families[BACKUP_TIMESTAMP].add_metric(
                    [bucket, prefix, str(aggregate.total_size)],
                    datetime_to_epoch_ms(aggregate.latest_timestamp),
                )

        yield from families.values()

    def render(self) -> bytes:
        """Return the Prometheus text exposition of the backup gauges."""
        return generate_latest(self._prom_registry)
