from abc import ABC, abstractmethod
from typing import Optional

from backup_exporter.model.listing import ListingResult


class ListingClient(ABC):
    """Minimal surface the collection cycle needs from an object store."""

    async def __aenter__(self) -> "ListingClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    @abstractmethod
    async def list(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        delimiter: Optional[str] = None,
    ) -> ListingResult:
        """Return every object (and child prefix, with a delimiter) under ``prefix``."""
        raise NotImplementedError
