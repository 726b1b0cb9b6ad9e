# api/attendance/attendance_schema.py

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import date, datetime

from api.attendance.attendance_records_model import (
    AttendanceStatus,
    InvalidReason,
    NotificationMethod,
    TimeWindow,
)
from api.subjects.subjects_schema import SubjectOut


class GeoLocationIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)


class DeviceInfoIn(BaseModel):
    platform: Optional[str] = Field(default=None, max_length=50)
    user_agent: Optional[str] = Field(default=None, max_length=255)
    ip_address: Optional[str] = Field(default=None, max_length=64)


class ScanIn(BaseModel):
    """
    Payload sent by a scanner device after reading a QR code.
    `scan_time` lets offline scanners replay queued scans; it defaults to now.
    """
    qr_code: str = Field(..., min_length=1)
    location: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=200)
    geo_location: Optional[GeoLocationIn] = None
    device_info: Optional[DeviceInfoIn] = None
    scan_time: Optional[datetime] = None


class ClassificationOut(BaseModel):
    status: AttendanceStatus
    time_window: TimeWindow
    minutes_late: int = 0


class AttendanceOut(BaseModel):
    id: int
    subject_id: int
    recorded_by: Optional[str] = None
    scan_time: datetime
    scan_date: date
    status: AttendanceStatus
    time_window: Optional[TimeWindow] = None
    minutes_late: int = 0
    location: Optional[str] = None
    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_valid_scan: bool
    invalid_reason: Optional[InvalidReason] = None
    notification_sent: bool = False
    notification_method: Optional[NotificationMethod] = None
    notification_status: Optional[str] = None
    notification_sent_at: Optional[datetime] = None
    notification_error: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ScanOut(BaseModel):
    success: bool = True
    message: str
    record: AttendanceOut
    classification: ClassificationOut
    subject: SubjectOut


class InvalidateIn(BaseModel):
    reason: InvalidReason = InvalidReason.manual


class StatusCorrectionIn(BaseModel):
    status: AttendanceStatus
