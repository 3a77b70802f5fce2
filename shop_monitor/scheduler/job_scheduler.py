"""Job scheduling for the periodic check and the one-shot recovery check."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger


logger = structlog.get_logger(__name__)


class JobScheduler:
    """Manages scheduled monitor jobs using APScheduler."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.running = False

    async def start(self):
        """Start the job scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.start()
        self.running = True
        logger.info("Job scheduler started")

    async def stop(self):
        """Stop the job scheduler."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Job scheduler stopped")

    def add_interval_job(
        self,
        job_id: str,
        func: Callable,
        seconds: int,
        description: Optional[str] = None,
        run_immediately: bool = False,
    ):
        """Add an interval-based job. At most one instance runs at a time."""
        if job_id in self.jobs:
            logger.warning("Job already exists, replacing", job_id=job_id)
            self.remove_job(job_id)

        trigger = IntervalTrigger(seconds=seconds)
        extra: Dict[str, Any] = {}
        if run_immediately:
            extra["next_run_time"] = datetime.now(timezone.utc)

        job = self.scheduler.add_job(
            func=func,
            trigger=trigger,
            id=job_id,
            name=description or job_id,
            max_instances=1,
            coalesce=True,
            **extra,
        )

        self.jobs[job_id] = {
            "job": job,
            "type": "interval",
            "seconds": seconds,
            "description": description,
            "added_at": datetime.now(timezone.utc),
        }

        logger.info("Added interval job",
                    job_id=job_id,
                    interval_seconds=seconds,
                    description=description)

    def is_pending(self, job_id: str) -> bool:
        """True if the job is in the live job store and has not fired yet."""
        return self.scheduler.get_job(job_id) is not None

    def schedule_once(
        self,
        job_id: str,
        func: Callable,
        delay_seconds: float,
        description: Optional[str] = None,
    ) -> bool:
        """Schedule a one-shot job unless one with the same id is still pending.

        Returns True if a new job was armed. Armed jobs always run, however
        late, and are not cancelled.
        """
        if self.is_pending(job_id):
            logger.info("One-shot job already pending", job_id=job_id)
            return False

        run_at = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        job = self.scheduler.add_job(
            func=func,
            trigger=DateTrigger(run_date=run_at),
            id=job_id,
            name=description or job_id,
            misfire_grace_time=None,
        )

        self.jobs[job_id] = {
            "job": job,
            "type": "date",
            "run_at": run_at,
            "description": description,
            "added_at": datetime.now(timezone.utc),
        }

        logger.info("Scheduled one-shot job", job_id=job_id, run_at=run_at.isoformat())
        return True

    def remove_job(self, job_id: str) -> bool:
        """Remove a scheduled job."""
        if job_id not in self.jobs:
            logger.warning("Job not found", job_id=job_id)
            return False

        try:
            if self.is_pending(job_id):
                self.scheduler.remove_job(job_id)
            del self.jobs[job_id]
            logger.info("Removed job", job_id=job_id)
            return True
        except Exception as e:
            logger.error("Failed to remove job", job_id=job_id, error=str(e))
            return False

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get status information for a job."""
        if job_id not in self.jobs:
            return None

        job_info = self.jobs[job_id]
        scheduler_job = self.scheduler.get_job(job_id)

        if scheduler_job is None:
            return None

        next_run = getattr(scheduler_job, "next_run_time", None)
        return {
            "job_id": job_id,
            "name": scheduler_job.name,
            "type": job_info["type"],
            "next_run": next_run.isoformat() if next_run else None,
            "added_at": job_info["added_at"].isoformat(),
            "description": job_info.get("description"),
        }

    def list_jobs(self) -> List[Dict[str, Any]]:
        """List all scheduled jobs."""
        job_statuses = []
        for job_id in self.jobs:
            status = self.get_job_status(job_id)
            if status:
                job_statuses.append(status)

        return job_statuses


class RunOnceScheduler:
    """Stand-in scheduler for single-cycle runs, where the process exits before any delayed job could fire."""

    def is_pending(self, job_id: str) -> bool:
        return False

    def schedule_once(
        self,
        job_id: str,
        func: Callable,
        delay_seconds: float,
        description: Optional[str] = None,
    ) -> bool:
        logger.warning(
            "Recovery check not available in single-run mode",
            job_id=job_id,
            delay_seconds=delay_seconds,
        )
        return False

    def list_jobs(self) -> List[Dict[str, Any]]:
        return []
