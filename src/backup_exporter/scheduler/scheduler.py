"""Factory helpers for building the APScheduler instance and its collection jobs."""

from datetime import datetime, tzinfo
from typing import Awaitable, Callable, List

from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 60,
}

UTC = ZoneInfo("UTC")

COLLECT_JOB_ID = "collect"
STARTUP_JOB_ID = "collect_startup"
MANUAL_JOB_ID = "collect_manual"

_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def build_scheduler(tz: tzinfo = UTC) -> AsyncIOScheduler:
    """Create an in-memory ``AsyncIOScheduler`` with single-instance job defaults."""
    return AsyncIOScheduler(timezone=tz, job_defaults=DEFAULTS)


def build_cron_trigger(expression: str, tz: tzinfo = UTC) -> CronTrigger:
    """Parse a crontab expression into a ``CronTrigger``.

    Five fields are ``minute hour day month day_of_week``; six fields put
    ``second`` first. Numeric weekdays follow crontab (0 and 7 are Sunday).
    Restricting both day-of-month and day-of-week is rejected: crontab fires
    when either matches while ``CronTrigger`` requires both.

    :param expression: Crontab expression.
    :param tz: Timezone the expression is evaluated in.
    :return: Configured ``CronTrigger``.
    :raises ValueError: If the expression has the wrong arity or an invalid field.
    """
    fields = expression.split()
    if len(fields) == 5:
        second = "0"
    elif len(fields) == 6:
        second, fields = fields[0], fields[1:]
    else:
        raise ValueError(f"expected 5 or 6 fields, got {len(fields)}")

    minute, hour, day, month, day_of_week = fields
    if day != "*" and day_of_week != "*":
        raise ValueError("restrict either day-of-month or day-of-week, not both")
    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_crontab_day_of_week(day_of_week),
        timezone=tz,
    )


def _crontab_day_of_week(field: str) -> str:
    """Rewrite crontab weekdays as names, since APScheduler numbers Monday as 0."""
    if field == "*":
        return field

    names: List[str] = []
    for part in field.split(","):
        span, _, raw_step = part.partition("/")
        step = int(raw_step) if raw_step else 1
        if step < 1:
            raise ValueError(f"invalid day_of_week step: {raw_step}")

        if span == "*":
            start, end = 0, 6
        elif "-" in span:
            raw_start, raw_end = span.split("-", 1)
            start, end = _weekday_index(raw_start), _weekday_index(raw_end)
        else:
            start = _weekday_index(span)
            end = 6 if raw_step else start

        if start > end:
            raise ValueError(f"invalid day_of_week range: {part}")
        for day in range(start, end + 1, step):
            name = _WEEKDAYS[day % 7]
            if name not in names:
                names.append(name)
    return ",".join(names)


def _weekday_index(value: str) -> int:
    """Return 0-7 for a crontab weekday number or three-letter name."""
    value = value.strip().lower()
    if value in _WEEKDAYS:
        return _WEEKDAYS.index(value)
    try:
        index = int(value)
    except ValueError:
        raise ValueError(f"invalid day_of_week value: {value!r}") from None
    if not 0 <= index <= 7:
        raise ValueError(f"day_of_week out of range: {index}")
    return index


def register_collection_jobs(
    scheduler: AsyncIOScheduler,
    job: Callable[[], Awaitable[None]],
    expression: str,
    tz: tzinfo = UTC,
    etl_logger=None,
) -> None:
    """Add the recurring cron job plus a one-shot run at startup.

    :param scheduler: Target scheduler.
    :param job: Zero-argument coroutine function running one cycle.
    :param expression: Crontab expression for the recurring job.
    :param tz: Timezone used by both triggers.
    :param etl_logger: Logger used for registration messages.
    """
    scheduler.add_job(
        func=job,
        trigger=build_cron_trigger(expression, tz),
        id=COLLECT_JOB_ID,
        replace_existing=True,
        **DEFAULTS,
    )
    scheduler.add_job(
        func=job,
        trigger=DateTrigger(run_date=datetime.now(tz=tz), timezone=tz),
        id=STARTUP_JOB_ID,
        replace_existing=True,
        # A startup run must not be dropped as misfired if the loop is slow to start.
        misfire_grace_time=None,
    )
    if etl_logger is not None:
        etl_logger.info(f"Registered job: {COLLECT_JOB_ID} (cron '{expression}') and startup run")
