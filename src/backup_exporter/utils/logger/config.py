"""Configuration objects and enums used by the logging subsystem."""

from dataclasses import dataclass
from enum import IntEnum


class LogLevel(IntEnum):
    """Severity levels understood by :class:`Logger`."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARNING = 3
    ERROR = 4
    CRITICAL = 5


@dataclass
class LogEvent:
    """A single formatted log line waiting to be dispatched."""

    text: str
    level: LogLevel


DEFAULT_FORMAT = "%(asctime)s %(icon)s [%(levelname)s] %(name)s - %(message)s"


@dataclass
class LoggerConfig:
    """Runtime configuration for :class:`backup_exporter.utils.logger.logger.Logger`.

    :param base_level: Minimum severity that will be recorded.
    :param do_stdout: Whether messages are mirrored to stdout.
    :param str_format: ``%``-style format applied to every message.
    :param buffer_capacity: Maximum buffered events before a flush.
    :param buffer_timeout: Maximum seconds before the buffer auto-flushes.
    """

    base_level: LogLevel = LogLevel.INFO
    do_stdout: bool = True
    str_format: str = DEFAULT_FORMAT
    buffer_capacity: int = 100
    buffer_timeout: float = 5.0

    def __post_init__(self) -> None:
        if not isinstance(self.buffer_capacity, int):
            raise ValueError(f"Invalid buffer capacity; expected int but got {type(self.buffer_capacity)}")

        if self.buffer_capacity < 1:
            raise ValueError(f"Invalid buffer capacity; expected >=1 but got {self.buffer_capacity}")

        if self.buffer_timeout <= 0.0:
            raise ValueError(f"Invalid buffer timeout; expected >0 but got {self.buffer_timeout}")

        if "%(message)s" not in self.str_format:
            raise ValueError("Format string must contain '%(message)s' placeholder")
