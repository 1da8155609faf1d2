import os
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from backup_exporter.errors import ConfigError
from backup_exporter.scheduler.scheduler import build_cron_trigger
from backup_exporter.utils.logger.config import LogLevel

load_dotenv()

REQUIRED_VARS = (
    "S3_ACCESS_KEY",
    "S3_SECRET_KEY",
    "S3_ENDPOINT",
    "S3_REGION",
    "S3_BUCKET",
    "CRON_EXPRESSION",
)


class Env:
    """Validated process settings read from environment variables."""

    def __init__(
        self,
        *,
        s3_access_key: str,
        s3_secret_key: str,
        s3_endpoint: str,
        s3_region: str,
        s3_bucket: str,
        cron_expression: str,
        host: str = "0.0.0.0",
        port: int = 8000,
        delimiter: str = "/",
        list_concurrency: int = 8,
        list_timeout: float = 60.0,
        list_page_size: int = 1000,
        timezone: str = "UTC",
        log_dir: str = "logs",
        log_level: LogLevel = LogLevel.INFO,
    ) -> None:
        self.S3_ACCESS_KEY = s3_access_key
        self.S3_SECRET_KEY = s3_secret_key
        self.S3_ENDPOINT = s3_endpoint
        self.S3_REGION = s3_region
        self.S3_BUCKET = s3_bucket
        self.CRON_EXPRESSION = cron_expression
        self.EXPORTER_HOST = host
        self.EXPORTER_PORT = port
        self.S3_DELIMITER = delimiter
        self.LIST_CONCURRENCY = list_concurrency
        self.LIST_TIMEOUT_SECONDS = list_timeout
        self.LIST_PAGE_SIZE = list_page_size
        self.SCHEDULER_TIMEZONE = timezone
        self.LOG_DIR = log_dir
        self.LOG_LEVEL = log_level

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.SCHEDULER_TIMEZONE)

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "Env":
        """Build settings from ``environ`` (defaults to ``os.environ``).

        :param environ: Mapping of variable names to raw string values.
        :return: Validated :class:`Env` instance.
        :raises ConfigError: If a required variable is missing or a value is invalid.
        """
        if environ is None:
            environ = os.environ

        missing_vars = [var for var in REQUIRED_VARS if not environ.get(var)]
        if missing_vars:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing_vars)}",
                keys=missing_vars,
            )

        settings = cls(
            s3_access_key=environ["S3_ACCESS_KEY"],
            s3_secret_key=environ["S3_SECRET_KEY"],
            s3_endpoint=environ["S3_ENDPOINT"],
            s3_region=environ["S3_REGION"],
            s3_bucket=environ["S3_BUCKET"],
            cron_expression=environ["CRON_EXPRESSION"].strip(),
            host=environ.get("EXPORTER_HOST") or "0.0.0.0",
            port=_positive_int(environ, "EXPORTER_PORT", 8000),
            delimiter=environ.get("S3_DELIMITER") or "/",
            list_concurrency=_positive_int(environ, "LIST_CONCURRENCY", 8),
            list_timeout=_positive_float(environ, "LIST_TIMEOUT_SECONDS", 60.0),
            list_page_size=_positive_int(environ, "LIST_PAGE_SIZE", 1000),
            timezone=environ.get("SCHEDULER_TIMEZONE") or "UTC",
            log_dir=environ.get("LOG_DIR") or "logs",
            log_level=_log_level(environ),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Check values that can only be verified after parsing.

        :raises ConfigError: If the timezone or cron expression cannot be used.
        """
        try:
            tz = self.tz
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(
                f"Invalid SCHEDULER_TIMEZONE: {self.SCHEDULER_TIMEZONE!r}", keys=["SCHEDULER_TIMEZONE"]
            ) from exc

        try:
            build_cron_trigger(self.CRON_EXPRESSION, tz)
        except ValueError as exc:
            raise ConfigError(
                f"Invalid CRON_EXPRESSION {self.CRON_EXPRESSION!r}: {exc}", keys=["CRON_EXPRESSION"]
            ) from exc


def _positive_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}", keys=[key]) from exc
    if value < 1:
        raise ConfigError(f"{key} must be >= 1, got {value}", keys=[key])
    return value


def _positive_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}", keys=[key]) from exc
    if value <= 0:
        raise ConfigError(f"{key} must be > 0, got {value}", keys=[key])
    return value


def _log_level(environ: Mapping[str, str]) -> LogLevel:
    raw = (environ.get("LOG_LEVEL") or "INFO").upper()
    try:
        return LogLevel[raw]
    except KeyError as exc:
        choices = ", ".join(level.name for level in LogLevel)
        raise ConfigError(f"LOG_LEVEL must be one of {choices}, got {raw!r}", keys=["LOG_LEVEL"]) from exc
