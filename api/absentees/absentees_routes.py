# api/absentees/absentees_routes.py

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from middlewares.auth_middleware import auth_middleware, require_admin
from api.absentees.absentees_controller import AbsenteesController
from api.absentees.absentees_scheduler import AbsenteeScheduler
from api.absentees.absentees_service import AbsenteeSweep
from api.absentees.absentees_schema import (
    AbsentSubjectsOut,
    ScheduleInfoOut,
    SendAbsenceNotificationIn,
    SendAbsenceNotificationOut,
    SweepSummaryOut,
)
from utils.deps import get_scheduler, get_sweep

router = APIRouter(prefix="/absentees", tags=["absentees"])


@router.get(
    "/absent-students",
    response_model=AbsentSubjectsOut,
    summary="Active subjects with no valid scan on the given day (default today)",
)
async def absent_students(
    day: Optional[date] = Query(default=None, alias="date"),
    db: AsyncSession = Depends(get_db),
    sweep: AbsenteeSweep = Depends(get_sweep),
    current_user: dict = Depends(auth_middleware),
) -> AbsentSubjectsOut:
    return await AbsenteesController.absent_subjects(day, db, sweep)


@router.post(
    "/manual-check",
    response_model=SweepSummaryOut,
    summary="Run the absentee check now",
)
async def manual_check(
    sweep: AbsenteeSweep = Depends(get_sweep),
    current_user: dict = Depends(require_admin),
) -> SweepSummaryOut:
    return await AbsenteesController.manual_check(sweep)


@router.get(
    "/schedule-info",
    response_model=ScheduleInfoOut,
    summary="When the absentee check runs",
)
def schedule_info(
    scheduler: AbsenteeScheduler = Depends(get_scheduler),
    current_user: dict = Depends(auth_middleware),
) -> ScheduleInfoOut:
    return AbsenteesController.schedule_info(scheduler)


@router.post(
    "/send-notification",
    response_model=SendAbsenceNotificationOut,
    summary="Send absence notifications to selected subjects' contacts",
)
async def send_absence_notification(
    payload: SendAbsenceNotificationIn,
    db: AsyncSession = Depends(get_db),
    sweep: AbsenteeSweep = Depends(get_sweep),
    current_user: dict = Depends(require_admin),
) -> SendAbsenceNotificationOut:
    return await AbsenteesController.send_notifications(payload, db, sweep)
