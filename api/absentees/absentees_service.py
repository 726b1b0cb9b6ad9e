# api/absentees/absentees_service.py
"""
Daily absentee sweep: everyone active who has no valid scan by the cutoff gets
a synthetic absence record and their contact is notified. Re-running on the
same day is a no-op for subjects already marked absent.
"""
import asyncio
import enum
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import config.database as database
from api.attendance.attendance_service import AttendanceService
from api.notifications.notifications_model import (
    DELIVERED_STATES,
    Notification,
    NotificationPriority,
    NotificationType,
)
from api.notifications.notifications_service import (
    NotificationDispatcher,
    absentee_detected,
    build_absence_message,
)
from api.subjects.subjects_model import Subject
from api.subjects.subjects_service import SubjectService
from config.settings import settings as default_settings
from utils.exceptions import NoDeliverableChannel, SweepAlreadyRunning
from utils.time_utils import ensure_aware, local_today, utc_now

logger = logging.getLogger(__name__)


class SweepState(enum.Enum):
    idle    = "idle"
    running = "running"


def _subject_result(subject: Subject) -> Dict[str, Any]:
    return {
        "subject_id": subject.id,
        "subject_code": subject.subject_code,
        "name": subject.display_name,
        "record_id": None,
        "notification_id": None,
        "skipped": False,
        "email_sent": False,
        "sms_sent": False,
        "errors": [],
    }


class AbsenteeSweep:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        session_factory=None,
        settings=None,
    ):
        self.dispatcher = dispatcher
        self.settings = settings or default_settings
        self._session_factory = session_factory
        self._lock = asyncio.Lock()
        self.state = SweepState.idle
        self.last_summary: Optional[Dict[str, Any]] = None

    @property
    def session_factory(self):
        return self._session_factory or database.SessionLocal

    @property
    def is_running(self) -> bool:
        return self.state is SweepState.running

    # ─── queries ─────────────────────────────────────────────────────────────

    async def get_absent_subjects(self, db: AsyncSession, day: Optional[date] = None) -> List[Subject]:
        day = day or local_today(self.settings.TIMEZONE)
        active = await SubjectService(db).find_active_subjects()
        present = await AttendanceService(db, settings=self.settings).find_present_subject_ids(day)
        return [s for s in active if s.id not in present]

    # ─── sweep ───────────────────────────────────────────────────────────────

    async def run(self, now: Optional[datetime] = None, trigger: str = "manual") -> Dict[str, Any]:
        """Run one sweep. Refuses to start while another run is in progress."""
        if self._lock.locked():
            raise SweepAlreadyRunning("An absentee check is already running")

        async with self._lock:
            self.state = SweepState.running
            logger.info("▶️ Starting absentee check (%s)", trigger)
            try:
                async with self.session_factory() as db:
                    summary = await self._sweep(db, ensure_aware(now or utc_now()), trigger)
            except Exception:
                logger.exception("❌ Absentee check failed")
                raise
            finally:
                self.state = SweepState.idle

        self.last_summary = summary
        return summary

    async def _sweep(self, db: AsyncSession, now: datetime, trigger: str) -> Dict[str, Any]:
        today = local_today(self.settings.TIMEZONE, now)
        attendance = AttendanceService(db, settings=self.settings)

        active = await SubjectService(db).find_active_subjects()
        present = await attendance.find_present_subject_ids(today)
        absentees = [s for s in active if s.id not in present]
        logger.info("Found %s active subjects, %s absent on %s", len(active), len(absentees), today)

        results = []
        notified_ids = []
        for subject_id in [s.id for s in absentees]:
            # reload: a rollback in an earlier iteration expires loaded rows
            subject = await db.get(Subject, subject_id)
            result = await self._process_absentee(db, attendance, subject, today, now)
            if result["notification_id"]:
                notified_ids.append(result["notification_id"])
            results.append(result)

        summary = {
            "date": today.isoformat(),
            "trigger": trigger,
            "started_at": now.isoformat(),
            "total_active": len(active),
            "total": len(absentees),
            "records_created": sum(1 for r in results if r["record_id"] and not r["skipped"]),
            "skipped": sum(1 for r in results if r["skipped"]),
            "emails_sent": sum(1 for r in results if r["email_sent"]),
            "sms_sent": sum(1 for r in results if r["sms_sent"]),
            "error_count": sum(1 for r in results if r["errors"]),
            "results": results,
        }
        logger.info(
            "Absentee summary: total=%s created=%s skipped=%s emails=%s sms=%s errors=%s",
            summary["total"], summary["records_created"], summary["skipped"],
            summary["emails_sent"], summary["sms_sent"], summary["error_count"],
        )
        for r in results:
            if r["errors"]:
                logger.warning("Notification issues for %s: %s", r["name"], r["errors"])

        # notifications from this run have had their first attempt already
        summary["retried"] = await self.dispatcher.retry_pending(db, exclude_ids=notified_ids)
        return summary

    async def _process_absentee(
        self,
        db: AsyncSession,
        attendance: AttendanceService,
        subject: Subject,
        today: date,
        now: datetime,
    ) -> Dict[str, Any]:
        result = _subject_result(subject)
        try:
            existing = await attendance.find_absence_record(subject.id, today)
            if existing is not None:
                result["record_id"] = existing.id
                result["skipped"] = True
                return result

            try:
                record = await attendance.create_absence_record(subject, now)
            except IntegrityError:
                # another run got there first
                result["skipped"] = True
                return result
            result["record_id"] = record.id
            absentee_detected.send(self, subject=subject, day=today, record_id=record.id)

            content = build_absence_message(subject, today, self.settings.ABSENTEE_CUTOFF_TIME)
            try:
                notification = await self.dispatcher.send(
                    db, subject, content["body"],
                    subject_line=content["subject_line"],
                    notification_type=NotificationType.absence,
                    priority=NotificationPriority.high,
                    record_id=record.id,
                    sms_message=content["sms"],
                )
            except NoDeliverableChannel as e:
                result["errors"].append(e.message)
                notification = await db.get(Notification, e.notification_id)

            result["notification_id"] = notification.id
            result["email_sent"] = notification.is_enabled("email") and notification.get_status("email") in DELIVERED_STATES
            result["sms_sent"] = notification.is_enabled("sms") and notification.get_status("sms") in DELIVERED_STATES
            result["errors"].extend(
                getattr(notification, f"{ch}_error")
                for ch in notification.enabled_channels()
                if getattr(notification, f"{ch}_error")
            )
            await attendance.mark_notification(record.id, notification)
        except Exception as e:
            logger.exception("Error processing absentee %s", result["subject_code"])
            await db.rollback()
            result["errors"].append(f"General error: {e}")
        return result

    async def send_absence_notifications(
        self,
        db: AsyncSession,
        subjects: Sequence[Subject],
        custom_message: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Notify the given subjects' contacts now, without touching records."""
        today = local_today(self.settings.TIMEZONE)
        results = []
        for subject_id in [s.id for s in subjects]:
            subject = await db.get(Subject, subject_id)
            result = _subject_result(subject)
            content = build_absence_message(subject, today, self.settings.ABSENTEE_CUTOFF_TIME, custom_message)
            try:
                notification = await self.dispatcher.send(
                    db, subject, content["body"],
                    subject_line=content["subject_line"],
                    notification_type=NotificationType.absence,
                    priority=NotificationPriority.high,
                    sms_message=content["sms"],
                )
                result["notification_id"] = notification.id
                result["email_sent"] = notification.get_status("email") in DELIVERED_STATES and notification.is_enabled("email")
                result["sms_sent"] = notification.get_status("sms") in DELIVERED_STATES and notification.is_enabled("sms")
                if notification.error_summary():
                    result["errors"].append(notification.error_summary())
            except NoDeliverableChannel as e:
                result["notification_id"] = e.notification_id
                result["errors"].append(e.message)
            except Exception as e:
                logger.exception("Absence notification failed for subject %s", subject_id)
                await db.rollback()
                result["errors"].append(str(e))
            results.append(result)
        return results
