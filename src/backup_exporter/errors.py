"""Exception types raised across the exporter."""

from typing import Iterable, Optional


class ExporterError(Exception):
    """Base class for exporter failures."""


class ConfigError(ExporterError):
    """A required setting is missing or invalid."""

    def __init__(self, message: str, keys: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.keys = list(keys)


class ListingError(ExporterError):
    """An object-storage listing call failed or timed out."""

    def __init__(self, message: str, *, bucket: str, prefix: Optional[str] = None) -> None:
        super().__init__(message)
        self.bucket = bucket
        self.prefix = prefix


class CycleSkipped(ExporterError):
    """A collection cycle was requested while another one was still running."""
