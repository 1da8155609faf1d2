"""Abstract sink for batches of log events."""

from abc import ABC, abstractmethod
from typing import List, Optional

from backup_exporter.utils.logger.config import LogEvent, LoggerConfig


class BaseLogHandler(ABC):
    """Receives flushed batches from :class:`Logger`."""

    def __init__(self) -> None:
        self._primary_config: Optional[LoggerConfig] = None

    def add_primary_config(self, config: LoggerConfig) -> None:
        """Remember the owning logger's configuration."""
        self._primary_config = config

    async def start(self) -> None:
        """Acquire resources before the first push."""

    async def shutdown(self) -> None:
        """Release resources after the last push."""

    @abstractmethod
    async def push(self, records: List[LogEvent]) -> None:
        """Persist or forward a batch of events."""
        raise NotImplementedError
