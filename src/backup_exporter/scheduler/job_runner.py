"""Scheduler-facing wrapper around a collection cycle."""

from backup_exporter.collector.cycle import CollectionCycle
from backup_exporter.utils.logger.logger import Logger
from backup_exporter.utils.logger_factory import log_exception


async def run_collection_job(cycle: CollectionCycle, logger: Logger, job_id: str = "collect") -> None:
    """Execute one cycle for APScheduler, logging and re-raising failures.

    Re-raising lets APScheduler emit ``EVENT_JOB_ERROR`` so the monitor
    records the failed run; the registry already kept its previous values.

    :param cycle: Cycle to run.
    :param logger: Logger for failure reports.
    :param job_id: Identifier used as log context.
    :raises Exception: Re-raises cycle failures after logging them.
    """
    try:
        await cycle.run()
    except Exception as e:
        log_exception(logger, e, context=f"job:{job_id}")
        raise
