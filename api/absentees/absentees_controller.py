# api/absentees/absentees_controller.py

from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from api.absentees.absentees_scheduler import AbsenteeScheduler
from api.absentees.absentees_service import AbsenteeSweep
from api.absentees.absentees_schema import (
    AbsentSubjectsOut,
    ScheduleInfoOut,
    SendAbsenceNotificationIn,
    SendAbsenceNotificationOut,
    SubjectSweepResult,
    SweepSummaryOut,
)
from api.subjects.subjects_schema import SubjectOut
from api.subjects.subjects_service import SubjectService
from utils.time_utils import local_today


class AbsenteesController:
    @staticmethod
    async def absent_subjects(day: Optional[date], db: AsyncSession, sweep: AbsenteeSweep) -> AbsentSubjectsOut:
        day = day or local_today(sweep.settings.TIMEZONE)
        subjects = await sweep.get_absent_subjects(db, day)
        return AbsentSubjectsOut(
            date=day.isoformat(),
            count=len(subjects),
            subjects=[SubjectOut.model_validate(s) for s in subjects],
        )

    @staticmethod
    async def manual_check(sweep: AbsenteeSweep) -> SweepSummaryOut:
        summary = await sweep.run(trigger="manual")
        return SweepSummaryOut(**summary)

    @staticmethod
    def schedule_info(scheduler: AbsenteeScheduler) -> ScheduleInfoOut:
        return ScheduleInfoOut(**scheduler.info())

    @staticmethod
    async def send_notifications(
        payload: SendAbsenceNotificationIn,
        db: AsyncSession,
        sweep: AbsenteeSweep,
    ) -> SendAbsenceNotificationOut:
        subjects = await SubjectService(db).find_subjects_by_ids(payload.subject_ids)
        found = {s.id for s in subjects}

        results = [
            SubjectSweepResult(subject_id=sid, subject_code="", name="", errors=["Subject not found or inactive"])
            for sid in payload.subject_ids
            if sid not in found
        ]
        sent = await sweep.send_absence_notifications(db, subjects, payload.custom_message)
        results.extend(SubjectSweepResult(**r) for r in sent)

        return SendAbsenceNotificationOut(
            total=len(results),
            successful=sum(1 for r in results if r.email_sent or r.sms_sent),
            results=results,
        )
