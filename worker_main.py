# worker_main.py
"""
Out-of-process runner for the scheduled jobs, for deployments that keep the
API workers free of APScheduler (ABSENTEE_SCHEDULER_ENABLED=false):
 - runs the absentee check once, or in a loop that fires on the configured
   weekdays at the cutoff, like the in-process scheduler
 - re-attempts pending notifications
 - exposes CLI flags for manual testing
"""

import sys
import asyncio
import logging
import argparse
from datetime import timedelta

from config.logging_config import setup_logging
from api.absentees.absentees_scheduler import build_cron_trigger
from config.settings import settings
from utils.time_utils import utc_now

logger = logging.getLogger("worker")


def _build_sweep():
    import config.database as database
    from api.absentees.absentees_service import AbsenteeSweep
    from api.notifications.notifications_service import NotificationDispatcher

    dispatcher = NotificationDispatcher(session_factory=database.SessionLocal)
    return AbsenteeSweep(dispatcher, session_factory=database.SessionLocal)


async def run_absentee_check():
    sweep = _build_sweep()
    summary = await sweep.run(trigger="worker")
    logger.info(
        "▶️ Absentee check done: %s absent, %s records created, %s skipped, %s errors",
        summary["total"], summary["records_created"], summary["skipped"], summary["error_count"],
    )
    return summary


async def retry_pending_notifications():
    import config.database as database

    sweep = _build_sweep()
    async with database.SessionLocal() as db:
        summary = await sweep.dispatcher.retry_pending(db)
    logger.info("▶️ Pending notification retry: %s", summary)
    return summary


async def run_when_due(trigger, due_at, now):
    """Run the absentee check once its cron firing has come; returns the next firing."""
    if due_at is None or now < due_at:
        return due_at
    try:
        await run_absentee_check()
    except Exception:
        logger.exception("❌ Worker loop error")
    # a firing missed while the worker was down is not caught up
    return trigger.get_next_fire_time(None, now + timedelta(seconds=1))


async def _run(args):
    import config.database as database

    try:
        if settings.AUTO_CREATE_TABLES:
            await database.init_models()

        if args.interval:
            trigger = build_cron_trigger(settings)
            due_at = trigger.get_next_fire_time(None, utc_now())
            logger.info(
                "▶️ Worker started in loop mode (interval=%ss, next absentee check at %s)",
                args.interval, due_at,
            )
            while True:
                due_at = await run_when_due(trigger, due_at, utc_now())
                await asyncio.sleep(args.interval)

        if args.run_sweep:
            logger.info("▶️ Running absentee check")
            await run_absentee_check()
        if args.retry_pending:
            logger.info("▶️ Running pending notification retry")
            await retry_pending_notifications()
    finally:
        await database.engine.dispose()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Attendance worker (absentee check / notification retry)")
    parser.add_argument("--interval", type=int, help="Seconds between checks of the absentee schedule (loop mode)")
    parser.add_argument("--run-sweep", action="store_true", help="Run the absentee check once")
    parser.add_argument("--retry-pending", action="store_true", help="Re-attempt pending notifications once")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.debug else settings.LOG_LEVEL)
    if args.debug:
        logger.debug("Debug logging enabled")

    if not (args.interval or args.run_sweep or args.retry_pending):
        logger.info("▶️ worker_main executed (no jobs run). Use --run-sweep, --retry-pending or --interval.")
        return 0

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Worker stopped")
    except Exception:
        logger.exception("❌ Worker failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
