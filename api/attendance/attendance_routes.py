# api/attendance/attendance_routes.py

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from middlewares.auth_middleware import auth_middleware, require_admin
from api.attendance.attendance_schema import (
    AttendanceOut,
    InvalidateIn,
    ScanIn,
    ScanOut,
    StatusCorrectionIn,
)
from api.attendance.attendance_controller import AttendanceController
from api.notifications.notifications_service import NotificationDispatcher
from utils.deps import get_dispatcher

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post(
    "/scan",
    response_model=ScanOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record attendance from a scanned QR code",
)
async def scan_qr_code(
    payload: ScanIn,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: dict = Depends(auth_middleware),
) -> ScanOut:
    recorder_id = current_user["id"]
    return await AttendanceController.scan(payload, db, recorder_id, background_tasks, dispatcher)


@router.get(
    "/records/{record_id}",
    response_model=AttendanceOut,
    summary="Fetch a single attendance record",
)
async def get_record(
    record_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(auth_middleware),
) -> AttendanceOut:
    return await AttendanceController.get_record(record_id, db)


@router.put(
    "/records/{record_id}/invalidate",
    response_model=AttendanceOut,
    summary="Soft-invalidate a record (kept for audit)",
)
async def invalidate_record(
    record_id: int,
    payload: InvalidateIn,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(require_admin),
) -> AttendanceOut:
    return await AttendanceController.invalidate(record_id, payload, db)


@router.put(
    "/records/{record_id}/status",
    response_model=AttendanceOut,
    summary="Administrative status correction",
)
async def correct_record_status(
    record_id: int,
    payload: StatusCorrectionIn,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(require_admin),
) -> AttendanceOut:
    return await AttendanceController.correct_status(record_id, payload, db)
