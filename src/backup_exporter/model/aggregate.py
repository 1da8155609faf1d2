from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional


@dataclass(frozen=True)
class PrefixAggregate:
    """Size, count and freshness of the objects under one prefix."""

    prefix: str
    total_size: int = 0
    count: int = 0
    latest_timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class BucketAggregate:
    """Total size of every object in the bucket."""

    total_size: int = 0


@dataclass(frozen=True)
class CycleSnapshot:
    """Complete output of one collection cycle, published in a single step."""

    bucket: str
    bucket_aggregate: BucketAggregate
    prefix_aggregates: Dict[str, PrefixAggregate] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()
