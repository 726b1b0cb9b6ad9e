# api/absentees/absentees_scheduler.py

import logging
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from api.absentees.absentees_service import AbsenteeSweep
from config.settings import settings as default_settings
from utils.exceptions import SweepAlreadyRunning

logger = logging.getLogger(__name__)

JOB_ID = "absentee-check"

DAY_NAMES = {
    "mon": "Monday", "tue": "Tuesday", "wed": "Wednesday", "thu": "Thursday",
    "fri": "Friday", "sat": "Saturday", "sun": "Sunday",
}


def describe_days(days: str) -> str:
    parts = []
    for chunk in days.split(","):
        if "-" in chunk:
            first, last = chunk.split("-", 1)
            parts.append(f"{DAY_NAMES[first]} to {DAY_NAMES[last]}")
        else:
            parts.append(DAY_NAMES[chunk])
    return ", ".join(parts)


def build_cron_trigger(settings) -> CronTrigger:
    """Cron trigger for the absentee check: configured weekdays at the cutoff, local time."""
    hour, minute = settings.absentee_cutoff
    # day_of_week names avoid the numbering mismatch between crontab and APScheduler
    return CronTrigger(
        day_of_week=settings.ABSENTEE_DAYS,
        hour=hour,
        minute=minute,
        timezone=settings.TIMEZONE,
    )


class AbsenteeScheduler:
    """
    Handle around the cron job that runs the absentee sweep. Created and owned
    by the app lifespan.
    """

    def __init__(self, sweep: AbsenteeSweep, settings=None, scheduler: Optional[AsyncIOScheduler] = None):
        self.sweep = sweep
        self.settings = settings or default_settings
        self.hour, self.minute = self.settings.absentee_cutoff
        self.days = self.settings.ABSENTEE_DAYS
        self.timezone = self.settings.TIMEZONE
        self._scheduler = scheduler or AsyncIOScheduler(timezone=self.timezone)

    @property
    def cron_expression(self) -> str:
        return f"{self.minute} {self.hour} * * {self.days}"

    def build_trigger(self) -> CronTrigger:
        return build_cron_trigger(self.settings)

    async def _run_job(self):
        try:
            await self.sweep.run(trigger="scheduled")
        except SweepAlreadyRunning:
            logger.warning("Scheduled absentee check skipped: previous run still in progress")
        except Exception:
            logger.exception("❌ Scheduled absentee check failed")

    def start(self) -> None:
        if self._scheduler.get_job(JOB_ID) is None:
            self._scheduler.add_job(
                self._run_job,
                trigger=self.build_trigger(),
                id=JOB_ID,
                name="Absentee check",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(
            "Absentee scheduler started - runs at %02d:%02d on %s (%s)",
            self.hour, self.minute, describe_days(self.days), self.timezone,
        )

    def stop(self) -> None:
        """Remove future firings; a sweep already running is left to finish."""
        if self._scheduler.get_job(JOB_ID) is not None:
            self._scheduler.remove_job(JOB_ID)
            logger.info("Stopped scheduled job: %s", JOB_ID)

    def shutdown(self) -> None:
        self.stop()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def info(self) -> Dict[str, Any]:
        job = self._scheduler.get_job(JOB_ID)
        next_run = getattr(job, "next_run_time", None) if job else None
        return {
            "cutoff_time": f"{self.hour:02d}:{self.minute:02d}",
            "cron_expression": self.cron_expression,
            "timezone": self.timezone,
            "description": f"Runs at {self.hour:02d}:{self.minute:02d} on {describe_days(self.days)}",
            "active_jobs": [job.id] if job else [],
            "next_run_time": next_run.isoformat() if next_run else None,
            "state": self.sweep.state.value,
            "last_summary": self.sweep.last_summary,
        }
