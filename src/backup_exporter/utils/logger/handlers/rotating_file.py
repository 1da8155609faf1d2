"""Log handlers writing to time-rotated files."""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Literal

from backup_exporter.utils.logger.config import LogEvent, LogLevel
from backup_exporter.utils.logger.handlers.base import BaseLogHandler

Rotation = Literal["daily", "hourly", "per_minute"]

_PATTERNS = {
    "daily": "%Y-%m-%d",
    "hourly": "%Y%m%d %H:00:00",
    "per_minute": "%Y%m%d %H:%M:00",
}


class RotatingFileHandler(BaseLogHandler):
    """Append events at or above ``min_level`` to a file named after the current window."""

    suffix = ".log"

    def __init__(
        self,
        base_dir: str,
        filename_prefix: str = "",
        create: bool = True,
        rotation: Rotation = "daily",
        min_level: LogLevel = LogLevel.TRACE,
    ) -> None:
        """Configure the target directory and rotation window.

        :param base_dir: Base directory where log files are written.
        :param filename_prefix: Optional subdirectory grouping the files.
        :param create: Whether to create ``base_dir`` up front.
        :param rotation: Granularity of the filename timestamp.
        :param min_level: Lowest severity written by this handler.
        """
        super().__init__()
        self.base_dir = Path(base_dir)
        self.filename_prefix = filename_prefix
        self.min_level = min_level
        if create:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self._pattern = _PATTERNS[rotation]

    def current_filepath(self) -> str:
        """Return the file path for the current rotation window."""
        stamp = datetime.now(timezone.utc).strftime(self._pattern)
        filename = f"{stamp}{self.suffix}"
        if self.filename_prefix:
            return str(self.base_dir / self.filename_prefix / filename)
        return str(self.base_dir / filename)

    async def push(self, records: List[LogEvent]) -> None:
        lines = [ev.text for ev in records if ev.level >= self.min_level]
        if not lines:
            return
        path = self.current_filepath()
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
            f.flush()


class ErrorFileHandler(RotatingFileHandler):
    """Keep error and critical events in a separate ``*.error.log`` file."""

    suffix = ".error.log"

    def __init__(self, base_dir: str, filename_prefix: str = "", create: bool = True,
                 rotation: Rotation = "daily") -> None:
        super().__init__(base_dir, filename_prefix, create, rotation, min_level=LogLevel.ERROR)
