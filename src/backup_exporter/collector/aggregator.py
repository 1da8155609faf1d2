"""Pure reductions from object listings to size/count/freshness aggregates."""

from typing import Iterable, Optional
from datetime import datetime

from backup_exporter.model.aggregate import BucketAggregate, PrefixAggregate
from backup_exporter.model.listing import ObjectRecord


def aggregate_bucket(objects: Iterable[ObjectRecord]) -> BucketAggregate:
    """Sum object sizes over the whole bucket; absent sizes count as 0."""
    return BucketAggregate(total_size=sum(obj.size or 0 for obj in objects))


def aggregate_prefix(prefix: str, objects: Iterable[ObjectRecord]) -> PrefixAggregate:
    """Reduce the objects under ``prefix`` to total size, count and latest timestamp.

    Objects without a size contribute 0 bytes but are still counted. Objects
    without ``last_modified`` are left out of the maximum; if none carries one,
    ``latest_timestamp`` stays ``None``.

    :param prefix: Prefix the objects were listed under.
    :param objects: Object records belonging to ``prefix``.
    :return: Immutable :class:`PrefixAggregate`.
    """
    total_size = 0
    count = 0
    latest: Optional[datetime] = None

    for obj in objects:
        total_size += obj.size or 0
        count += 1
        if obj.last_modified is not None and (latest is None or obj.last_modified > latest):
            latest = obj.last_modified

    return PrefixAggregate(prefix=prefix, total_size=total_size, count=count, latest_timestamp=latest)
