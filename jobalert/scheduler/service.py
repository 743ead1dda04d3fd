"""Scheduler service for the daily and weekly digest triggers."""

import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from jobalert.config.models import ScheduleConfig
from jobalert.domain.models import Frequency
from jobalert.logging import get_logger

logger = get_logger(__name__, component="scheduler")

JOB_IDS: Dict[Frequency, str] = {
    Frequency.DAILY: "digest-daily",
    Frequency.WEEKLY: "digest-weekly",
}


class DigestScheduler:
    """
    Holds the digest trigger definitions and fires them on a background thread.

    Each frequency is registered as its own APScheduler job with
    ``max_instances=1``, so a trigger that fires while the previous run of
    the same frequency is still going is skipped rather than queued.
    """

    def __init__(
        self,
        run_digest: Callable[[Frequency], Any],
        schedule: Optional[ScheduleConfig] = None,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            run_digest: Called with the frequency on each trigger (e.g. aggregator.run)
            schedule: Trigger hours, weekday and timezone
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.run_digest = run_digest
        self.schedule = schedule or ScheduleConfig()
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": self.schedule.misfire_grace_seconds,
            },
            timezone=self.schedule.timezone,
        )

    def build_trigger(self, frequency: Frequency) -> CronTrigger:
        """Return the cron trigger for a frequency class."""
        if Frequency(frequency) == Frequency.DAILY:
            return CronTrigger(
                hour=self.schedule.daily_hour, minute=0, timezone=self.schedule.timezone
            )
        return CronTrigger(
            day_of_week=self.schedule.weekly_day,
            hour=self.schedule.weekly_hour,
            minute=0,
            timezone=self.schedule.timezone,
        )

    def start(self) -> None:
        """Register both digest jobs and start the background scheduler."""
        for frequency, job_id in JOB_IDS.items():
            self.scheduler.add_job(
                func=self.run_digest,
                trigger=self.build_trigger(frequency),
                args=[frequency],
                id=job_id,
                name=f"{frequency.value.capitalize()} job alert digest",
                replace_existing=True,
            )

        self.scheduler.start()

        logger.info(
            "Digest scheduler started",
            extra={
                "event": "scheduler.started",
                "timezone": self.schedule.timezone,
                "daily_hour": self.schedule.daily_hour,
                "weekly_day": self.schedule.weekly_day,
                "weekly_hour": self.schedule.weekly_hour,
                "next_daily_run": _iso(self.get_next_run_time(Frequency.DAILY)),
                "next_weekly_run": _iso(self.get_next_run_time(Frequency.WEEKLY)),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for running digest runs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self, frequency: Frequency) -> Any:
        """
        Run one digest synchronously in the current thread.

        Returns:
            Whatever the digest callable returns
        """
        frequency = Frequency(frequency)
        logger.info(
            f"Triggering immediate {frequency.value} digest run",
            extra={"event": "scheduler.trigger_now", "frequency": frequency.value},
        )
        return self.run_digest(frequency)

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self, frequency: Frequency) -> Optional[datetime]:
        """
        Get the next scheduled run time for a frequency.

        Returns:
            Next run time as a timezone-aware datetime, or None if not scheduled
        """
        job = self.scheduler.get_job(JOB_IDS[Frequency(frequency)])
        if job is None:
            return None
        return getattr(job, "next_run_time", None)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
