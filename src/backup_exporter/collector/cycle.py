"""One discover -> aggregate -> publish pass over the monitored bucket."""

import asyncio
from typing import Callable, List, Optional

from backup_exporter.collector.aggregator import aggregate_bucket, aggregate_prefix
from backup_exporter.errors import ListingError
from backup_exporter.metrics.exporter_stats import ExporterStats
from backup_exporter.metrics.registry import MetricsRegistry
from backup_exporter.model.aggregate import BucketAggregate, CycleSnapshot, PrefixAggregate
from backup_exporter.model.listing import ListingResult
from backup_exporter.model.scheduler import CycleOutcome
from backup_exporter.storage.base import ListingClient
from backup_exporter.utils.logger.logger import Logger
from backup_exporter.utils.misc import utc_now


class CollectionCycle:
    """Builds a complete :class:`CycleSnapshot` and publishes it in one step.

    Listing calls share a semaphore of ``concurrency`` slots and are each
    bounded by ``timeout`` seconds. Any failed or timed-out call aborts the
    publish, leaving the registry on its previous snapshot. A run-lock makes
    a trigger that arrives while a cycle is in flight a no-op.
    """

    def __init__(
        self,
        *,
        bucket: str,
        client_factory: Callable[[], ListingClient],
        registry: MetricsRegistry,
        logger: Logger,
        stats: Optional[ExporterStats] = None,
        delimiter: str = "/",
        concurrency: int = 8,
        timeout: float = 60.0,
    ) -> None:
        """Wire the cycle to its listing source and publish target.

        :param bucket: Bucket to inspect.
        :param client_factory: Zero-argument callable returning a fresh async-context
            :class:`ListingClient`; one client is opened per cycle.
        :param registry: Registry receiving the finished snapshot.
        :param logger: Logger for progress and failures.
        :param stats: Optional cycle outcome recorder for self-metrics.
        :param delimiter: Delimiter used to discover top-level prefixes.
        :param concurrency: Maximum listing calls in flight at once.
        :param timeout: Seconds allowed per listing call.
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")

        self.bucket = bucket
        self.delimiter = delimiter
        self.concurrency = concurrency
        self.timeout = timeout
        self._client_factory = client_factory
        self._registry = registry
        self._logger = logger
        self._stats = stats
        self._run_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        """Whether a cycle currently holds the run-lock."""
        return self._run_lock.locked()

    async def run(self) -> Optional[CycleSnapshot]:
        """Run one cycle unless another one is in flight.

        :return: The published snapshot, or ``None`` when the trigger was skipped.
        :raises ListingError: If any listing call failed; nothing was published.
        :raises Exception: Propagates failures opening the listing client, also unpublished.
        """
        if self._run_lock.locked():
            self._logger.warning(f"Collection for bucket {self.bucket} still running; skipping this trigger")
            self._record(CycleOutcome(result="skipped", finished_at=utc_now()))
            return None

        async with self._run_lock:
            started_at = utc_now()
            self._logger.info(f"Collection started for bucket {self.bucket}")
            try:
                snapshot = await self.collect(started_at=started_at)
            except Exception as e:
                finished_at = utc_now()
                self._logger.error(
                    f"Collection aborted for bucket {self.bucket}; keeping previous metrics ({e})"
                )
                self._record(CycleOutcome(
                    result="error",
                    finished_at=finished_at,
                    duration_seconds=(finished_at - started_at).total_seconds(),
                    error=str(e),
                ))
                raise

            self._registry.publish(snapshot)
            self._record(CycleOutcome(
                result="success",
                finished_at=snapshot.finished_at,
                duration_seconds=snapshot.duration_seconds,
                prefix_count=len(snapshot.prefix_aggregates),
            ))
            self._logger.info(
                f"Collection finished for bucket {self.bucket}: {len(snapshot.prefix_aggregates)} prefixes, "
                f"{snapshot.bucket_aggregate.total_size} bytes in {snapshot.duration_seconds:.2f}s"
            )
            return snapshot

    async def collect(self, started_at=None) -> CycleSnapshot:
        """List and aggregate the bucket without publishing.

        :param started_at: Start time recorded on the snapshot; defaults to now.
        :return: Complete snapshot of every discovered prefix and the bucket total.
        :raises ListingError: If any listing call failed or timed out.
        """
        started_at = started_at or utc_now()
        semaphore = asyncio.Semaphore(self.concurrency)

        async with self._client_factory() as client:
            discovery = await self._list(client, semaphore, prefix=None, delimiter=self.delimiter)
            prefixes = sorted(set(discovery.common_prefixes))
            self._logger.debug(f"Discovered {len(prefixes)} prefixes in bucket {self.bucket}")

            results = await asyncio.gather(
                self._collect_bucket(client, semaphore),
                *(self._collect_prefix(client, semaphore, prefix) for prefix in prefixes),
                return_exceptions=True,
            )

        failures: List[BaseException] = [r for r in results if isinstance(r, BaseException)]
        if failures:
            for failure in failures:
                self._logger.error(f"{type(failure).__name__}: {failure}")
            first = failures[0]
            if isinstance(first, ListingError):
                raise first
            raise ListingError(str(first), bucket=self.bucket) from first

        bucket_aggregate: BucketAggregate = results[0]
        prefix_aggregates: List[PrefixAggregate] = list(results[1:])
        return CycleSnapshot(
            bucket=self.bucket,
            bucket_aggregate=bucket_aggregate,
            prefix_aggregates={agg.prefix: agg for agg in prefix_aggregates},
            started_at=started_at,
            finished_at=utc_now(),
        )

    async def _collect_prefix(self, client: ListingClient, semaphore: asyncio.Semaphore,
                              prefix: str) -> PrefixAggregate:
        listing = await self._list(client, semaphore, prefix=prefix)
        aggregate = aggregate_prefix(prefix, listing.objects)
        self._logger.debug(
            f"prefix={prefix} count={aggregate.count} size={aggregate.total_size} "
            f"latest={aggregate.latest_timestamp}"
        )
        return aggregate

    async def _collect_bucket(self, client: ListingClient, semaphore: asyncio.Semaphore) -> BucketAggregate:
        listing = await self._list(client, semaphore)
        return aggregate_bucket(listing.objects)

    async def _list(
        self,
        client: ListingClient,
        semaphore: asyncio.Semaphore,
        prefix: Optional[str] = None,
        delimiter: Optional[str] = None,
    ) -> ListingResult:
        """Run one listing call inside the semaphore and timeout.

        :raises ListingError: Wrapping any failure, including timeout expiry.
        """
        where = f"{self.bucket}/{prefix or ''}"
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    client.list(self.bucket, prefix=prefix, delimiter=delimiter),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                raise ListingError(
                    f"Listing {where} timed out after {self.timeout}s", bucket=self.bucket, prefix=prefix
                ) from e
            except ListingError:
                raise
            except Exception as e:
                raise ListingError(
                    f"Listing {where} failed: {type(e).__name__}: {e}", bucket=self.bucket, prefix=prefix
                ) from e

    def _record(self, outcome: CycleOutcome) -> None:
        if self._stats is not None:
            self._stats.record(outcome)
