import asyncio
from datetime import datetime, timezone

import pytest

from backup_exporter.collector.cycle import CollectionCycle
from backup_exporter.errors import ListingError
from backup_exporter.metrics.exporter_stats import ExporterStats
from backup_exporter.metrics.registry import BACKUP_COUNT, BACKUP_TIMESTAMP, BUCKET_SIZE, MetricsRegistry
from backup_exporter.model.listing import ObjectRecord

from conftest import FakeListingClient


def _cycle(client, registry, logger, stats=None, **kwargs) -> CollectionCycle:
    return CollectionCycle(
        bucket="dns-backups",
        client_factory=lambda: client,
        registry=registry,
        logger=logger,
        stats=stats,
        **kwargs,
    )


def _values(registry: MetricsRegistry, name: str) -> dict:
    return {
        sample.labels.get("dns_name", sample.labels["bucket"]): sample.value
        for sample in registry.samples()
        if sample.name == name
    }


@pytest.mark.asyncio
async def test_cycle_publishes_every_prefix(bucket_objects, dummy_logger):
    client = FakeListingClient(bucket_objects)
    registry = MetricsRegistry()
    stats = ExporterStats()

    snapshot = await _cycle(client, registry, dummy_logger, stats).run()

    assert list(snapshot.prefix_aggregates) == ["example.com/", "example.net/", "example.org/"]
    assert snapshot.bucket_aggregate.total_size == 3352
    assert snapshot.prefix_aggregates["example.com/"].total_size == 2500
    assert snapshot.prefix_aggregates["example.org/"].count == 2
    assert snapshot.prefix_aggregates["example.org/"].latest_timestamp == datetime(
        2024, 6, 2, 3, 31, tzinfo=timezone.utc
    )

    assert _values(registry, BUCKET_SIZE) == {"dns-backups": 3352}
    assert _values(registry, BACKUP_COUNT) == {"example.com/": 2, "example.net/": 1, "example.org/": 2}
    assert set(_values(registry, BACKUP_TIMESTAMP)) == {"example.com/", "example.org/"}
    assert stats.counts() == {"success": 1}
    assert client.entered == client.exited == 1


@pytest.mark.asyncio
async def test_cycle_lists_discovery_with_delimiter_and_prefixes_without(bucket_objects, dummy_logger):
    client = FakeListingClient(bucket_objects)

    await _cycle(client, MetricsRegistry(), dummy_logger).run()

    assert client.calls[0] == {"bucket": "dns-backups", "prefix": None, "delimiter": "/"}
    rest = client.calls[1:]
    assert {"bucket": "dns-backups", "prefix": None, "delimiter": None} in rest
    assert sorted(call["prefix"] for call in rest if call["prefix"]) == [
        "example.com/", "example.net/", "example.org/",
    ]
    assert all(call["delimiter"] is None for call in rest)


@pytest.mark.asyncio
async def test_failed_listing_keeps_previous_metrics(bucket_objects, dummy_logger):
    registry = MetricsRegistry()
    stats = ExporterStats()
    await _cycle(FakeListingClient(bucket_objects), registry, dummy_logger, stats).run()
    before = registry.render()

    grown = bucket_objects + [ObjectRecord("example.com/2024-06-03.tar.gz", size=5000)]
    failing = FakeListingClient(grown, fail_prefixes={"example.org/"})

    with pytest.raises(ListingError) as exc_info:
        await _cycle(failing, registry, dummy_logger, stats).run()

    assert exc_info.value.prefix == "example.org/"
    assert registry.render() == before
    assert stats.counts() == {"success": 1, "error": 1}
    assert stats.last_outcome.result == "error"
    assert any("example.org/" in line for line in dummy_logger.lines("ERROR"))


@pytest.mark.asyncio
async def test_listing_timeout_aborts_cycle(bucket_objects, dummy_logger):
    registry = MetricsRegistry()
    client = FakeListingClient(bucket_objects, delay=1.0)

    with pytest.raises(ListingError, match="timed out"):
        await _cycle(client, registry, dummy_logger, timeout=0.05).run()

    assert registry.prefixes("dns-backups") == []


@pytest.mark.asyncio
async def test_client_open_failure_is_not_published(dummy_logger):
    registry = MetricsRegistry()
    stats = ExporterStats()

    def broken_factory():
        raise ConnectionError("endpoint unreachable")

    cycle = CollectionCycle(
        bucket="dns-backups", client_factory=broken_factory, registry=registry,
        logger=dummy_logger, stats=stats,
    )
    with pytest.raises(ConnectionError):
        await cycle.run()

    assert registry.samples() == []
    assert stats.counts() == {"error": 1}
    assert not cycle.running


@pytest.mark.asyncio
async def test_overlapping_trigger_is_skipped(bucket_objects, dummy_logger):
    gate = asyncio.Event()
    client = FakeListingClient(bucket_objects, gate=gate)
    stats = ExporterStats()
    cycle = _cycle(client, MetricsRegistry(), dummy_logger, stats)

    first = asyncio.create_task(cycle.run())
    await asyncio.sleep(0)
    assert cycle.running

    assert await cycle.run() is None
    assert stats.counts() == {"skipped": 1}

    gate.set()
    snapshot = await first
    assert snapshot is not None
    assert stats.counts() == {"skipped": 1, "success": 1}
    assert stats.last_outcome.result == "success"
    assert dummy_logger.lines("WARNING")


@pytest.mark.asyncio
async def test_listing_fan_out_is_bounded(dummy_logger):
    objects = [ObjectRecord(f"host{i}/backup.tar", size=i) for i in range(12)]
    client = FakeListingClient(objects, delay=0.01)

    snapshot = await _cycle(client, MetricsRegistry(), dummy_logger, concurrency=3).run()

    assert len(snapshot.prefix_aggregates) == 12
    assert client.max_in_flight <= 3


@pytest.mark.asyncio
async def test_empty_bucket_publishes_zero_total(dummy_logger):
    registry = MetricsRegistry()

    snapshot = await _cycle(FakeListingClient([]), registry, dummy_logger).run()

    assert snapshot.prefix_aggregates == {}
    assert _values(registry, BUCKET_SIZE) == {"dns-backups": 0}
    assert _values(registry, BACKUP_COUNT) == {}


@pytest.mark.asyncio
async def test_vanished_prefix_keeps_last_values(bucket_objects, dummy_logger):
    registry = MetricsRegistry()
    await _cycle(FakeListingClient(bucket_objects), registry, dummy_logger).run()

    remaining = [obj for obj in bucket_objects if not obj.key.startswith("example.net/")]
    await _cycle(FakeListingClient(remaining), registry, dummy_logger).run()

    assert registry.prefixes("dns-backups") == ["example.com/", "example.net/", "example.org/"]
    assert _values(registry, BUCKET_SIZE) == {"dns-backups": 3310}


def test_cycle_rejects_invalid_limits(dummy_logger):
    with pytest.raises(ValueError):
        _cycle(FakeListingClient([]), MetricsRegistry(), dummy_logger, concurrency=0)
    with pytest.raises(ValueError):
        _cycle(FakeListingClient([]), MetricsRegistry(), dummy_logger, timeout=0)


@pytest.mark.asyncio
async def test_render_during_cycle_shows_previous_snapshot(bucket_objects, dummy_logger):
    registry = MetricsRegistry()
    await _cycle(FakeListingClient(bucket_objects), registry, dummy_logger).run()
    before = registry.render()

    gate = asyncio.Event()
    grown = bucket_objects + [ObjectRecord("example.com/2024-06-03.tar.gz", size=5000)]
    blocked = FakeListingClient(grown, gate=gate)
    cycle = _cycle(blocked, registry, dummy_logger)

    running = asyncio.create_task(cycle.run())
    await asyncio.sleep(0)
    assert cycle.running
    assert registry.render() == before

    gate.set()
    await running
    assert registry.render() != before
    assert _values(registry, BUCKET_SIZE) == {"dns-backups": 8352}
