# api/attendance/attendance_controller.py

from typing import Optional, Union

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from api.attendance.attendance_service import AttendanceService
from api.attendance.attendance_schema import (
    AttendanceOut,
    ClassificationOut,
    InvalidateIn,
    ScanIn,
    ScanOut,
    StatusCorrectionIn,
)
from api.notifications.notifications_service import NotificationDispatcher, attendance_recorded
from api.subjects.subjects_schema import SubjectOut
from config.settings import settings


class AttendanceController:
    @staticmethod
    async def scan(
        payload: ScanIn,
        db: AsyncSession,
        current_user_id: Union[int, str],
        background_tasks: BackgroundTasks,
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> ScanOut:
        svc = AttendanceService(db)
        result = await svc.record_scan(payload, recorded_by=current_user_id)

        # the guardian notification runs after the response; its outcome
        # never changes what the scanner is told
        if settings.NOTIFY_ON_SCAN:
            attendance_recorded.send(
                AttendanceController,
                record_id=result.record.id,
                dispatcher=dispatcher,
                background_tasks=background_tasks,
            )

        c = result.classification
        if c.minutes_late:
            message = f"Attendance marked for {result.subject.display_name} ({c.minutes_late} minutes late)"
        else:
            message = f"Attendance marked for {result.subject.display_name}"

        return ScanOut(
            message=message,
            record=AttendanceOut.model_validate(result.record),
            classification=ClassificationOut(
                status=c.status,
                time_window=c.time_window,
                minutes_late=c.minutes_late,
            ),
            subject=SubjectOut.model_validate(result.subject),
        )

    @staticmethod
    async def get_record(record_id: int, db: AsyncSession) -> AttendanceOut:
        record = await AttendanceService(db).get_record(record_id)
        return AttendanceOut.model_validate(record)

    @staticmethod
    async def invalidate(record_id: int, payload: InvalidateIn, db: AsyncSession) -> AttendanceOut:
        record = await AttendanceService(db).invalidate(record_id, payload.reason)
        return AttendanceOut.model_validate(record)

    @staticmethod
    async def correct_status(record_id: int, payload: StatusCorrectionIn, db: AsyncSession) -> AttendanceOut:
        record = await AttendanceService(db).correct_status(record_id, payload.status)
        return AttendanceOut.model_validate(record)
