# api/notifications/notifications_controller.py

from sqlalchemy.ext.asyncio import AsyncSession

from api.notifications.notifications_model import Notification
from api.notifications.notifications_schema import (
    BulkResultOut,
    BulkSendIn,
    BulkSendOut,
    NotificationRead,
    RetrySummaryOut,
    SendNotificationIn,
)
from api.notifications.notifications_service import NotificationDispatcher, serialize_result
from api.subjects.subjects_service import SubjectService
from utils.exceptions import RecordNotFound, SubjectInactive, SubjectNotFound


class NotificationsController:
    @staticmethod
    async def send(payload: SendNotificationIn, db: AsyncSession, dispatcher: NotificationDispatcher) -> NotificationRead:
        subject = await SubjectService(db).find_subject_by_id(payload.subject_id)
        if subject is None:
            raise SubjectNotFound(f"Subject {payload.subject_id} not found")
        if not subject.is_active:
            raise SubjectInactive(f"Subject {subject.subject_code} is not active")

        notification = await dispatcher.send(
            db,
            subject,
            payload.message,
            payload.channels,
            subject_line=payload.subject_line,
            notification_type=payload.type,
            priority=payload.priority,
        )
        return NotificationRead.from_model(notification)

    @staticmethod
    async def bulk_send(payload: BulkSendIn, db: AsyncSession, dispatcher: NotificationDispatcher) -> BulkSendOut:
        subjects = await SubjectService(db).find_subjects_by_ids(payload.subject_ids)
        found = {s.id for s in subjects}

        results = [
            BulkResultOut(subject_id=sid, success=False, error="Subject not found or inactive")
            for sid in payload.subject_ids
            if sid not in found
        ]
        sent = await dispatcher.bulk_send(
            db, subjects, payload.message, payload.channels, subject_line=payload.subject_line,
        )
        results.extend(BulkResultOut(**serialize_result(r)) for r in sent)

        successful = sum(1 for r in results if r.success)
        return BulkSendOut(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            results=results,
        )

    @staticmethod
    async def retry_pending(db: AsyncSession, dispatcher: NotificationDispatcher) -> RetrySummaryOut:
        summary = await dispatcher.retry_pending(db)
        return RetrySummaryOut(**summary)

    @staticmethod
    async def get_notification(notification_id: int, db: AsyncSession) -> NotificationRead:
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise RecordNotFound(f"Notification {notification_id} not found")
        return NotificationRead.from_model(notification)
