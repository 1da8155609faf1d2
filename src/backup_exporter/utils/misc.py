"""Time helpers shared by the logger, the collector and the metrics layer."""

from __future__ import annotations

import datetime
import time
from typing import Optional, Union

import ciso8601


def time_s() -> float:
    """Return the current wall-clock time in seconds as a float."""

    return time.time()


def time_iso8601() -> str:
    """Return the current UTC time formatted as ``YYYY-MM-DDTHH:MM:SS.fffZ``."""

    dt = datetime.datetime.now(datetime.timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def utc_now() -> datetime.datetime:
    """Return an aware ``datetime`` for the current UTC instant."""

    return datetime.datetime.now(datetime.timezone.utc)


def normalize_datetime(value: Optional[Union[str, datetime.datetime]]) -> Optional[datetime.datetime]:
    """Coerce an ISO-8601 string or datetime into an aware UTC datetime.

    Naive values are assumed to already be UTC.

    :param value: Either ``None``, an ISO string, or a ``datetime`` instance.
    :return: Parsed datetime or ``None`` if the input was ``None``.
    :raises ValueError: If the string cannot be parsed into a datetime.
    :raises TypeError: If an unsupported type is supplied.
    """

    if value is None:
        return None
    if isinstance(value, str):
        value = ciso8601.parse_datetime(value)
    elif not isinstance(value, datetime.datetime):
        raise TypeError(f"Unsupported datetime value: {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def datetime_to_epoch_ms(dt: datetime.datetime) -> int:
    """Convert a datetime to integer milliseconds since the Unix epoch.

    :param dt: Datetime to convert; naive values are treated as UTC.
    :return: Milliseconds since 1970-01-01T00:00:00Z.
    """

    aware = normalize_datetime(dt)
    return int(aware.timestamp() * 1000)
