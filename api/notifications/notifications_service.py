# api/notifications/notifications_service.py

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from blinker import signal
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import config.database as database
from api.attendance.attendance_records_model import AttendanceRecord, AttendanceStatus
from api.attendance.attendance_service import AttendanceService
from api.notifications.notifications_model import (
    CHANNELS,
    ChannelStatus,
    Notification,
    NotificationPriority,
    NotificationType,
    OverallStatus,
    derive_overall_status,
)
from api.subjects.subjects_model import Subject, SubjectKind
from config.settings import settings as default_settings
from helpers.mail_helper import render_notification_html, send_email_async
from helpers.sms_helper import send_sms_async
from utils.exceptions import ChannelSendFailed, NoDeliverableChannel, RecordNotFound
from utils.time_utils import to_local, utc_now

logger = logging.getLogger(__name__)

__all__ = [
    "NotificationDispatcher",
    "derive_overall_status",
    "attendance_recorded",
    "absentee_detected",
]

SmsSender = Callable[[str, str], Awaitable[str]]
EmailSender = Callable[[str, str, str, Optional[str]], Awaitable[str]]

EMAIL_TYPES = {
    NotificationType.attendance: "attendance",
    NotificationType.absence: "absence",
}

# ------------------------------------------
# Define signals
# ------------------------------------------
attendance_recorded = signal("attendance_recorded")
absentee_detected   = signal("absentee_detected")


# ------------------------------------------
# Message builders
# ------------------------------------------
def _contact_greeting(subject: Subject) -> str:
    return f"Dear {subject.contact_name}," if subject.contact_name else "Dear Guardian,"


def build_attendance_message(subject: Subject, record: AttendanceRecord, tz_name: str) -> Dict[str, str]:
    local_time = to_local(record.scan_time, tz_name)
    stamp = local_time.strftime("%B %d, %Y at %I:%M %p")
    arrived = "arrived" if record.status == AttendanceStatus.present else "arrived late"
    place = "work" if subject.kind == SubjectKind.employee else "school"

    text = f"{subject.display_name} has {arrived} at {place} on {stamp}."
    if record.minutes_late:
        text += f" ({record.minutes_late} minutes late)"

    lines = [
        _contact_greeting(subject),
        "",
        text,
        "",
        f"Name: {subject.display_name}",
        f"ID: {subject.subject_code}",
        f"Group: {subject.group_name} - {subject.subgroup_name}",
        f"Status: {record.status.value}",
        f"Time: {stamp}",
        f"Location: {record.location or '-'}",
    ]
    if record.notes:
        lines.append(f"Notes: {record.notes}")

    return {
        "sms": text,
        "subject_line": f"Attendance Update: {subject.display_name}",
        "body": "\n".join(lines),
    }


def build_absence_message(subject: Subject, day: date, cutoff: str, custom_message: Optional[str] = None) -> Dict[str, str]:
    place = "work" if subject.kind == SubjectKind.employee else "school"
    text = custom_message or (
        f"{subject.display_name} has not been marked present at {place} "
        f"as of {cutoff} on {day.strftime('%B %d, %Y')}."
    )
    body = "\n".join([
        _contact_greeting(subject),
        "",
        text,
        "",
        f"Name: {subject.display_name}",
        f"ID: {subject.subject_code}",
        f"Group: {subject.group_name} - {subject.subgroup_name}",
        f"Date: {day.isoformat()}",
    ])
    return {
        "sms": text,
        "subject_line": f"Attendance Alert: {subject.display_name} - Absent Today",
        "body": body,
    }


@dataclass
class ChannelOutcome:
    channel: str
    status: ChannelStatus
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BulkResult:
    subject_id: int
    subject_name: Optional[str] = None
    success: bool = False
    notification_id: Optional[int] = None
    overall_status: Optional[str] = None
    channels: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None


def serialize_result(result: BulkResult) -> Dict[str, Any]:
    return {
        "subject_id": result.subject_id,
        "subject_name": result.subject_name,
        "success": result.success,
        "notification_id": result.notification_id,
        "overall_status": result.overall_status,
        "channels": result.channels,
        "error": result.error,
    }


class NotificationDispatcher:
    """
    Multi-channel delivery with per-channel isolation. Provider calls are
    awaited concurrently and each one is bounded by its own timeout.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        sms_sender: Optional[SmsSender] = None,
        email_sender: Optional[EmailSender] = None,
        settings=None,
    ):
        self.settings = settings or default_settings
        self.session_factory = session_factory
        self.sms_sender = sms_sender or send_sms_async
        self.email_sender = email_sender or send_email_async
        self.max_retries = self.settings.NOTIFICATION_MAX_RETRIES
        self.timeouts = {"sms": self.settings.SMS_TIMEOUT, "email": self.settings.EMAIL_TIMEOUT}

    # ─── channel attempts ────────────────────────────────────────────────────

    async def _deliver(self, channel: str, notification: Notification) -> str:
        if channel == "sms":
            return await self.sms_sender(notification.contact_phone, notification.sms_message or notification.message)
        html_body = render_notification_html(notification.message, EMAIL_TYPES.get(notification.type, "general"))
        return await self.email_sender(
            notification.contact_email,
            notification.subject_line or self.settings.APP_NAME,
            notification.message,
            html_body,
        )

    async def _attempt(self, channel: str, notification: Notification) -> ChannelOutcome:
        timeout = self.timeouts[channel]
        try:
            message_id = await asyncio.wait_for(self._deliver(channel, notification), timeout=timeout)
        except asyncio.TimeoutError:
            err = ChannelSendFailed(channel, f"provider timed out after {timeout}s")
            logger.error("Notification %s: %s", notification.id, err.message)
            return ChannelOutcome(channel, ChannelStatus.failed, error=err.message)
        except Exception as e:
            err = ChannelSendFailed(channel, str(e))
            logger.error("Notification %s: %s", notification.id, err.message)
            return ChannelOutcome(channel, ChannelStatus.failed, error=err.message)
        return ChannelOutcome(channel, ChannelStatus.sent, message_id=message_id and str(message_id))

    async def _attempt_channels(self, notification: Notification, channels: Sequence[str]) -> None:
        outcomes = await asyncio.gather(*(self._attempt(ch, notification) for ch in channels))
        sent_at = utc_now()
        for outcome in outcomes:
            notification.record_attempt(
                outcome.channel,
                outcome.status,
                sent_at=sent_at,
                message_id=outcome.message_id,
                error=outcome.error,
            )

    # ─── public operations ───────────────────────────────────────────────────

    async def send(
        self,
        db: AsyncSession,
        subject: Subject,
        message: str,
        channels: Optional[Iterable[str]] = None,
        subject_line: Optional[str] = None,
        notification_type: NotificationType = NotificationType.alert,
        priority: NotificationPriority = NotificationPriority.normal,
        record_id: Optional[int] = None,
        sms_message: Optional[str] = None,
    ) -> Notification:
        """
        Persist a notification, then attempt every enabled channel. A channel is
        enabled only when it was requested and the contact has an address for it.
        """
        requested = {c.lower() for c in (channels or self.settings.notification_channels_list)}
        addresses = {"sms": subject.contact_phone, "email": subject.contact_email}

        notification = Notification(
            subject_id=subject.id,
            attendance_record_id=record_id,
            type=notification_type,
            priority=priority,
            contact_name=subject.contact_name,
            contact_phone=subject.contact_phone,
            contact_email=subject.contact_email,
            subject_line=subject_line,
            message=message,
            sms_message=sms_message,
            overall_status=OverallStatus.pending,
            retry_count=0,
        )
        for ch in CHANNELS:
            setattr(notification, f"{ch}_enabled", ch in requested and bool(addresses[ch]))
            setattr(notification, f"{ch}_status", ChannelStatus.pending)
            setattr(notification, f"{ch}_attempts", 0)

        db.add(notification)
        await db.commit()
        await db.refresh(notification)

        enabled = notification.enabled_channels()
        if not enabled:
            logger.warning("No deliverable channel for subject %s (notification %s)", subject.subject_code, notification.id)
            raise NoDeliverableChannel(
                f"No contact phone or email available for {subject.display_name}",
                notification_id=notification.id,
            )

        await self._attempt_channels(notification, enabled)
        await db.commit()
        await db.refresh(notification)
        logger.info(
            "Notification %s for subject %s: %s",
            notification.id, subject.subject_code, notification.overall_status.value,
        )
        return notification

    async def bulk_send(
        self,
        db: AsyncSession,
        subjects: Sequence[Subject],
        message: str,
        channels: Optional[Iterable[str]] = None,
        subject_line: Optional[str] = None,
        notification_type: NotificationType = NotificationType.announcement,
    ) -> List[BulkResult]:
        results = []
        # a rollback expires every loaded subject, so reload each one by id
        for subject_id in [s.id for s in subjects]:
            subject = await db.get(Subject, subject_id)
            result = BulkResult(subject_id=subject.id, subject_name=subject.display_name)
            try:
                notification = await self.send(
                    db, subject, message, channels,
                    subject_line=subject_line,
                    notification_type=notification_type,
                )
                result.notification_id = notification.id
                result.overall_status = notification.overall_status.value
                result.channels = {ch: notification.get_status(ch).value for ch in notification.enabled_channels()}
                result.success = notification.overall_status in (OverallStatus.sent, OverallStatus.partial)
                if not result.success:
                    result.error = notification.error_summary()
            except NoDeliverableChannel as e:
                result.notification_id = e.notification_id
                result.overall_status = OverallStatus.pending.value
                result.error = e.message
            except Exception as e:
                logger.exception("Bulk notification failed for subject %s", subject_id)
                await db.rollback()
                result.error = str(e)
            results.append(result)
        return results

    async def retry_pending(self, db: AsyncSession, limit: int = 50, exclude_ids: Sequence[int] = ()) -> Dict[str, Any]:
        """Re-attempt the unsent channels of pending/partial notifications."""
        query = select(Notification).where(
            Notification.overall_status.in_([OverallStatus.pending, OverallStatus.partial]),
            Notification.retry_count < self.max_retries,
            or_(Notification.sms_enabled.is_(True), Notification.email_enabled.is_(True)),
        )
        if exclude_ids:
            query = query.where(Notification.id.notin_(list(exclude_ids)))
        result = await db.execute(
            query
            .order_by(Notification.created_at, Notification.id)
            .limit(limit)
        )
        notifications = list(result.scalars().all())

        summary = {"checked": len(notifications), "sent": 0, "partial": 0, "failed": 0, "pending": 0}
        for notification in notifications:
            notification.retry_count = (notification.retry_count or 0) + 1
            unsent = notification.unsent_channels()
            if unsent:
                await self._attempt_channels(notification, unsent)

            if notification.retry_count >= self.max_retries:
                for ch in notification.unsent_channels():
                    notification.mark_failed(ch, "Retry limit reached")
            notification.refresh_overall_status()
            await db.commit()

            summary[notification.overall_status.value] += 1
            if notification.attendance_record_id:
                await self._update_record_summary(db, notification)

        if notifications:
            logger.info("Pending notification retry: %s", summary)
        return summary

    async def notify_attendance(self, record_id: int, db: Optional[AsyncSession] = None) -> Optional[Notification]:
        """
        Guardian notification for a recorded scan. Failures are logged and kept
        on the record; nothing is raised to the caller.
        """
        if db is None:
            async with (self.session_factory or database.SessionLocal)() as session:
                return await self.notify_attendance(record_id, session)

        try:
            record = await db.get(AttendanceRecord, record_id)
            if record is None:
                raise RecordNotFound(f"Attendance record {record_id} not found")
            subject = await db.get(Subject, record.subject_id)

            content = build_attendance_message(subject, record, self.settings.TIMEZONE)
            notification = await self.send(
                db, subject, content["body"],
                subject_line=content["subject_line"],
                notification_type=NotificationType.attendance,
                record_id=record.id,
                sms_message=content["sms"],
            )
        except NoDeliverableChannel as e:
            logger.info("Attendance notification for record %s not sent: %s", record_id, e.message)
            notification = await db.get(Notification, e.notification_id)
        except Exception:
            logger.exception("Attendance notification for record %s failed", record_id)
            await db.rollback()
            return None

        await self._update_record_summary(db, notification)
        return notification

    async def _update_record_summary(self, db: AsyncSession, notification: Notification) -> None:
        await AttendanceService(db, settings=self.settings).mark_notification(notification.attendance_record_id, notification)

    def provider_status(self) -> Dict[str, Any]:
        return {
            "sms": {
                "provider": "twilio",
                "configured": self.settings.sms_configured,
                "from_number": self.settings.TWILIO_PHONE_NUMBER,
            },
            "email": {
                "provider": "smtp",
                "configured": self.settings.email_configured,
                "host": self.settings.EMAIL_HOST,
                "port": self.settings.EMAIL_PORT,
            },
            "channels": self.settings.notification_channels_list,
            "max_retries": self.max_retries,
        }


# ------------------------------------------
# Listener: Attendance Recorded
# ------------------------------------------
_pending_tasks = set()


@attendance_recorded.connect
def on_attendance_recorded(sender, **kwargs):
    record_id: int = kwargs.get("record_id")
    dispatcher: NotificationDispatcher = kwargs.get("dispatcher")
    background_tasks = kwargs.get("background_tasks")
    if dispatcher is None:
        logger.debug("attendance_recorded for record %s without a dispatcher; skipping", record_id)
        return

    logger.debug("attendance_recorded: scheduling notification for record %s", record_id)
    if background_tasks is not None:
        background_tasks.add_task(dispatcher.notify_attendance, record_id)
    else:
        task = asyncio.get_running_loop().create_task(dispatcher.notify_attendance(record_id))
        _pending_tasks.add(task)
        task.add_done_callback(_pending_tasks.discard)


# ------------------------------------------
# Listener: Absentee Detected
# ------------------------------------------
@absentee_detected.connect
def on_absentee_detected(sender, **kwargs):
    subject: Subject = kwargs.get("subject")
    day: date = kwargs.get("day")
    logger.info("Absentee detected: %s (%s) on %s", subject.display_name, subject.subject_code, day)
