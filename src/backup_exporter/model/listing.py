from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional

from backup_exporter.utils.misc import normalize_datetime


@dataclass(frozen=True)
class ObjectRecord:
    """Metadata of one stored object as returned by a listing call."""

    key: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None

    @classmethod
    def from_s3(cls, content: Mapping[str, Any]) -> "ObjectRecord":
        """Build a record from one entry of an S3 ``Contents`` array."""
        size = content.get("Size")
        return cls(
            key=content["Key"],
            size=int(size) if size is not None else None,
            last_modified=normalize_datetime(content.get("LastModified")),
        )


@dataclass
class ListingResult:
    """All objects and child prefixes of one (possibly multi-page) listing."""

    objects: List[ObjectRecord] = field(default_factory=list)
    common_prefixes: List[str] = field(default_factory=list)
