"""Exporter service: owns the registry, the collection cycle and the scheduler."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import asdict
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, Iterable, Optional

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    EVENT_JOB_SUBMITTED,
    JobEvent,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import STATE_PAUSED, STATE_RUNNING, STATE_STOPPED
from apscheduler.triggers.date import DateTrigger

from backup_exporter.collector.cycle import CollectionCycle
from backup_exporter.configs.env_config import Env
from backup_exporter.errors import CycleSkipped
from backup_exporter.metrics.exporter_stats import ExporterStats
from backup_exporter.metrics.registry import MetricsRegistry
from backup_exporter.model.scheduler import JobRunRecord, JobStats
from backup_exporter.scheduler.job_runner import run_collection_job
from backup_exporter.scheduler.scheduler import (
    COLLECT_JOB_ID,
    MANUAL_JOB_ID,
    build_scheduler,
    register_collection_jobs,
)
from backup_exporter.storage.base import ListingClient
from backup_exporter.storage.s3 import S3ListingClient
from backup_exporter.utils.logger.logger import Logger
from backup_exporter.utils.logger_factory import EnhancedLoggerFactory


class SchedulerMonitor:
    """APScheduler listener that tracks per-job execution data."""

    def __init__(self, *, history_size: int = 50) -> None:
        """:param history_size: Maximum events retained per job in memory."""
        self._lock = Lock()
        self._stats: Dict[str, JobStats] = {}
        self._inflight: Dict[str, datetime] = {}
        self._history_size = history_size

    def _initial_stats(self) -> JobStats:
        stats = JobStats()
        stats.history = deque(maxlen=self._history_size)
        return stats

    def default_stats(self) -> Dict[str, Any]:
        return _serialize_stats(self._initial_stats())

    def handle_event(self, event: JobEvent) -> None:
        """Consume an APScheduler event and update the in-memory stats."""
        code = event.code
        now = datetime.now().astimezone()
        scheduled_at = getattr(event, "scheduled_run_time", None)

        with self._lock:
            stats = self._stats.setdefault(event.job_id, self._initial_stats())

            if code & EVENT_JOB_SUBMITTED:
                stats.total_runs += 1
                stats.last_event = "submitted"
                stats.last_scheduled_at = scheduled_at
                stats.last_started_at = now
                stats.history.append(JobRunRecord(event="submitted", recorded_at=now, scheduled_at=scheduled_at))
                self._inflight[event.job_id] = now
                return

            if code & (EVENT_JOB_EXECUTED | EVENT_JOB_ERROR):
                failed = bool(code & EVENT_JOB_ERROR)
                start = self._inflight.pop(event.job_id, stats.last_started_at)
                stats.last_finished_at = now
                stats.last_duration_ms = _calc_duration_ms(start, now)
                if failed:
                    stats.total_error += 1
                    stats.last_event = "error"
                    stats.last_error = _format_exception(event)
                else:
                    stats.total_success += 1
                    stats.last_event = "success"
                    stats.last_error = None
                stats.history.append(
                    JobRunRecord(
                        event=stats.last_event,
                        recorded_at=now,
                        scheduled_at=scheduled_at,
                        duration_ms=stats.last_duration_ms,
                        message=stats.last_error,
                    )
                )
                return

            if code & EVENT_JOB_MISSED:
                stats.total_missed += 1
                stats.last_event = "missed"
                stats.last_finished_at = now
                stats.last_duration_ms = None
                stats.last_error = f"Run scheduled at {scheduled_at} was missed"
                stats.history.append(
                    JobRunRecord(event="missed", recorded_at=now, scheduled_at=scheduled_at, message=stats.last_error)
                )

    def snapshot(self, job_id: Optional[str] = None) -> Dict[str, Any]:
        """Return serialisable stats for a single job or for all jobs."""
        with self._lock:
            if job_id is not None:
                stats = self._stats.get(job_id)
                return _serialize_stats(stats) if stats else _serialize_stats(self._initial_stats())
            return {job: _serialize_stats(stats) for job, stats in self._stats.items()}


class ExporterService:
    """Encapsulates the registry, collection cycle, scheduler and logger lifecycle.

    The registry is created here and handed to the cycle (its only writer)
    and, through :attr:`registry`, to the HTTP layer (its reader).
    """

    def __init__(
        self,
        settings: Env,
        *,
        logger: Optional[Logger] = None,
        client_factory: Optional[Callable[[], ListingClient]] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        history_size: int = 50,
    ) -> None:
        """Build the registry, cycle, scheduler and monitor components.

        :param settings: Validated settings.
        :param logger: Logger override; defaults to the application logger.
        :param client_factory: Listing client factory override; defaults to S3.
        :param scheduler: Scheduler override; defaults to :func:`build_scheduler`.
        :param history_size: Events retained per job by the monitor.
        """
        self._settings = settings
        self._logger: Logger = logger or EnhancedLoggerFactory.create_application_logger(
            name="backup_exporter",
            enable_stdout=True,
            log_level=settings.LOG_LEVEL,
            base_dir=settings.LOG_DIR,
        )
        self._registry = MetricsRegistry()
        self._stats = ExporterStats()
        self._cycle = CollectionCycle(
            bucket=settings.S3_BUCKET,
            client_factory=client_factory or self._s3_client,
            registry=self._registry,
            logger=self._logger,
            stats=self._stats,
            delimiter=settings.S3_DELIMITER,
            concurrency=settings.LIST_CONCURRENCY,
            timeout=settings.LIST_TIMEOUT_SECONDS,
        )
        self._scheduler: AsyncIOScheduler = scheduler or build_scheduler(settings.tz)
        self._monitor = SchedulerMonitor(history_size=history_size)
        self._scheduler.add_listener(
            self._monitor.handle_event,
            EVENT_JOB_SUBMITTED | EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )
        self._started = False
        self._started_at: Optional[datetime] = None

    def _s3_client(self) -> S3ListingClient:
        return S3ListingClient(
            endpoint_url=self._settings.S3_ENDPOINT,
            access_key=self._settings.S3_ACCESS_KEY,
            secret_key=self._settings.S3_SECRET_KEY,
            region=self._settings.S3_REGION,
            page_size=self._settings.LIST_PAGE_SIZE,
        )

    async def _collect(self) -> None:
        await run_collection_job(self._cycle, self._logger, job_id=COLLECT_JOB_ID)

    async def startup(self) -> None:
        """Start logging, register the collection jobs and start the scheduler.

        The first cycle runs right away through a one-shot job; ``/metrics``
        serves an empty exposition until it publishes.
        """
        if self._started:
            return
        await self._logger.start()
        register_collection_jobs(
            self._scheduler,
            self._collect,
            self._settings.CRON_EXPRESSION,
            tz=self._settings.tz,
            etl_logger=self._logger,
        )
        self._scheduler.start()
        self._started = True
        self._started_at = datetime.now(tz=self._settings.tz)
        self._logger.info(
            f"Exporter service started for bucket {self._settings.S3_BUCKET} "
            f"(cron '{self._settings.CRON_EXPRESSION}')"
        )

    async def shutdown(self, *, wait: bool = False) -> None:
        """Stop the scheduler and logger.

        :param wait: Whether to wait for running jobs before shutdown completes.
        """
        if not self._started:
            return
        try:
            self._scheduler.shutdown(wait=wait)
            # AsyncIOScheduler finishes stopping on the next loop iteration.
            await asyncio.sleep(0)
        finally:
            self._started = False
            self._logger.info("Exporter service stopped")
            await self._logger.shutdown()

    @property
    def registry(self) -> MetricsRegistry:
        return self._registry

    @property
    def stats(self) -> ExporterStats:
        return self._stats

    @property
    def cycle(self) -> CollectionCycle:
        return self._cycle

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    @property
    def logger(self) -> Logger:
        return self._logger

    def status(self) -> Dict[str, Any]:
        """Summarise scheduler state and the latest collection cycle."""
        state = self._scheduler.state
        jobs = self._scheduler.get_jobs()
        last = self._stats.last_outcome
        return {
            "state": _map_state(state),
            "running": state == STATE_RUNNING,
            "bucket": self._settings.S3_BUCKET,
            "cron": self._settings.CRON_EXPRESSION,
            "job_count": len(jobs),
            "next_run_time": _next_run_time(jobs),
            "started_at": self._started_at,
            "timezone": str(self._scheduler.timezone),
            "cycle_running": self._cycle.running,
            "cycles": self._stats.counts(),
            "last_cycle": asdict(last) if last else None,
            "published_prefixes": len(self._registry.prefixes(self._settings.S3_BUCKET)),
        }

    def list_jobs(self) -> Iterable[Dict[str, Any]]:
        """Yield job definitions enriched with monitoring data."""
        stats_snapshot = self._monitor.snapshot()
        for job in self._scheduler.get_jobs():
            yield _serialize_job(job, stats_snapshot.get(job.id, self._monitor.default_stats()))

    def trigger_collection(self) -> Dict[str, Any]:
        """Schedule an immediate collection cycle.

        :return: Metadata about the scheduled run.
        :raises CycleSkipped: If a cycle is already in flight.
        """
        if self._cycle.running:
            raise CycleSkipped(f"Collection for bucket {self._settings.S3_BUCKET} is already running")

        now = datetime.now(tz=self._settings.tz)
        self._scheduler.add_job(
            func=self._collect,
            trigger=DateTrigger(run_date=now, timezone=self._settings.tz),
            id=MANUAL_JOB_ID,
            replace_existing=True,
            misfire_grace_time=None,
        )
        self._logger.info(f"Manual collection requested ({MANUAL_JOB_ID})")
        return {"job_id": COLLECT_JOB_ID, "scheduled_job_id": MANUAL_JOB_ID, "scheduled_for": now}


def _calc_duration_ms(start: Optional[datetime], end: datetime) -> Optional[float]:
    if start is None:
        return None
    return (end - start).total_seconds() * 1000


def _format_exception(event: JobEvent) -> str:
    exc = getattr(event, "exception", None)
    if exc is None:
        return "Job failed"
    return f"{type(exc).__name__}: {exc}"


def _serialize_stats(stats: JobStats) -> Dict[str, Any]:
    data = asdict(stats)
    data["history"] = [asdict(record) for record in stats.history]
    return data


def _map_state(state: int) -> str:
    return {
        STATE_STOPPED: "stopped",
        STATE_RUNNING: "running",
        STATE_PAUSED: "paused",
    }.get(state, "unknown")


def _next_run_time(jobs) -> Optional[datetime]:
    times = [job.next_run_time for job in jobs if getattr(job, "next_run_time", None)]
    return min(times) if times else None


def _serialize_job(job, stats: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": job.id,
        "trigger": str(job.trigger),
        "next_run_time": getattr(job, "next_run_time", None),
        "stats": stats,
    }
