"""
APScheduler-based sync scheduler.

Every job is registered with max_instances=1 and coalesce=True: a tick
that fires while the previous pass is still running is dropped (and
logged) instead of queuing, and missed ticks collapse into one run.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, JobEvent
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Scheduler for periodic reconciliation passes

    Wraps a BlockingScheduler by default; pass a different APScheduler
    scheduler (e.g. BackgroundScheduler) to embed it elsewhere.
    """

    def __init__(self, scheduler: BaseScheduler | None = None, misfire_grace_time: int = 30):
        """
        Initialize the scheduler

        Args:
            scheduler: APScheduler scheduler (default: BlockingScheduler in UTC)
            misfire_grace_time: Seconds a late tick may still run
        """
        self.scheduler = scheduler or BlockingScheduler(timezone=UTC)
        self.misfire_grace_time = misfire_grace_time
        self.scheduler.add_listener(
            self._on_job_event, EVENT_JOB_MAX_INSTANCES | EVENT_JOB_ERROR
        )

    @staticmethod
    def _on_job_event(event: JobEvent) -> None:
        if event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning(f"Job '{event.job_id}' still running, skipped this tick")
        else:
            logger.error(f"Job '{event.job_id}' raised: {event.exception}")

    def _add_job(
        self,
        job_func: Callable,
        trigger: Any,
        job_id: str,
        run_immediately: bool,
        kwargs: Dict[str, Any],
    ) -> None:
        options: Dict[str, Any] = {}
        if run_immediately:
            options["next_run_time"] = datetime.now(UTC)

        self.scheduler.add_job(
            job_func,
            trigger=trigger,
            id=job_id,
            kwargs=kwargs,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_time,
            **options,
        )

    def add_interval_job(
        self,
        job_func: Callable,
        interval_seconds: int,
        job_id: str,
        run_immediately: bool = False,
        **kwargs
    ) -> None:
        """
        Add a job that runs at fixed intervals

        Args:
            job_func: Function to execute
            interval_seconds: Interval in seconds
            job_id: Unique identifier for the job
            run_immediately: Also run once as soon as the scheduler starts
            **kwargs: Additional arguments to pass to job_func
        """
        if interval_seconds < 1:
            raise ValueError(f"interval_seconds must be >= 1, got {interval_seconds}")

        self._add_job(
            job_func,
            IntervalTrigger(seconds=interval_seconds, timezone=UTC),
            job_id,
            run_immediately,
            kwargs,
        )
        logger.info(f"Added interval job '{job_id}' with {interval_seconds}s interval")

    def add_cron_job(
        self,
        job_func: Callable,
        cron_expression: str,
        job_id: str,
        run_immediately: bool = False,
        **kwargs
    ) -> None:
        """
        Add a job that runs on a cron schedule

        Args:
            job_func: Function to execute
            cron_expression: Five-field cron expression, e.g. "*/5 * * * *"
            job_id: Unique identifier for the job
            run_immediately: Also run once as soon as the scheduler starts
            **kwargs: Additional arguments to pass to job_func

        Raises:
            ValueError: If the expression does not have five fields
        """
        parts = cron_expression.split()
        if len(parts) != 5:
            raise ValueError(
                "Cron expression must have 5 parts: minute hour day month day_of_week"
            )

        minute, hour, day, month, day_of_week = parts
        trigger = CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=day_of_week,
            timezone=UTC,
        )

        self._add_job(job_func, trigger, job_id, run_immediately, kwargs)
        logger.info(f"Added cron job '{job_id}' with schedule '{cron_expression}'")

    def remove_job(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        logger.info(f"Removed job '{job_id}'")

    def start(self) -> None:
        """
        Start the scheduler

        With the default BlockingScheduler this blocks until stop() is
        called or the process is interrupted.
        """
        logger.info(f"Starting sync scheduler with {len(self.scheduler.get_jobs())} job(s)")

        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped by user")
            self.stop()

    def stop(self, wait: bool = True) -> None:
        """
        Stop the scheduler

        Args:
            wait: Wait for a running pass to finish
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")

    def list_jobs(self) -> List[Dict[str, Any]]:
        """
        List all scheduled jobs

        Returns:
            List of job information dictionaries
        """
        job_list = []

        for job in self.scheduler.get_jobs():
            next_run_time = getattr(job, "next_run_time", None)
            job_list.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": next_run_time.isoformat() if next_run_time else None,
                "trigger": str(job.trigger),
            })

        return job_list
