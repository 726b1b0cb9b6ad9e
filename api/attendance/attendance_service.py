# api/attendance/attendance_service.py

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional, Set, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.attendance.attendance_classifier import Classification, classify, validate_scan_time
from api.attendance.attendance_records_model import (
    AttendanceRecord,
    AttendanceStatus,
    InvalidReason,
    NotificationMethod,
)
from api.attendance.attendance_schema import AttendanceOut, ScanIn
from api.qr_codes.qr_codes_service import QRCodec, get_qr_codec
from api.subjects.subjects_model import Subject
from api.subjects.subjects_service import SubjectService
from config.settings import settings as default_settings
from utils.exceptions import DuplicateScan, RecordNotFound, SubjectInactive, SubjectNotFound
from utils.time_utils import ensure_aware, local_today, to_local, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    record: AttendanceRecord
    classification: Classification
    subject: Subject


def record_to_dict(record: AttendanceRecord) -> dict:
    return AttendanceOut.model_validate(record).model_dump(mode="json")


class AttendanceService:
    def __init__(self, db: AsyncSession, codec: Optional[QRCodec] = None, settings=None):
        self.db = db
        self.codec = codec or get_qr_codec()
        self.settings = settings or default_settings

    # ─── lookups ─────────────────────────────────────────────────────────────

    async def get_record(self, record_id: int) -> AttendanceRecord:
        record = await self.db.get(AttendanceRecord, record_id)
        if record is None:
            raise RecordNotFound(f"Attendance record {record_id} not found")
        return record

    async def check_duplicate(self, subject_id: int, day: date) -> Optional[AttendanceRecord]:
        """The valid record for this subject on this local day, if any."""
        result = await self.db.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.subject_id == subject_id,
                AttendanceRecord.scan_date == day,
                AttendanceRecord.is_valid_scan.is_(True),
            )
            .limit(1)
        )
        return result.scalars().first()

    async def find_present_subject_ids(self, day: date) -> Set[int]:
        result = await self.db.execute(
            select(AttendanceRecord.subject_id)
            .where(
                AttendanceRecord.scan_date == day,
                AttendanceRecord.is_valid_scan.is_(True),
            )
            .distinct()
        )
        return set(result.scalars().all())

    async def find_absence_record(self, subject_id: int, day: date) -> Optional[AttendanceRecord]:
        result = await self.db.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.subject_id == subject_id,
                AttendanceRecord.scan_date == day,
                AttendanceRecord.invalid_reason == InvalidReason.absent,
            )
            .limit(1)
        )
        return result.scalars().first()

    async def list_records_for_day(self, day: date) -> List[AttendanceRecord]:
        result = await self.db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.scan_date == day)
            .order_by(AttendanceRecord.scan_time)
        )
        return list(result.scalars().all())

    # ─── recording ───────────────────────────────────────────────────────────

    async def record_scan(
        self, payload: ScanIn, recorded_by: Optional[Union[int, str]], now: Optional[datetime] = None
    ) -> ScanResult:
        """
        Decode the code, resolve the subject and persist a classified record.
        Every check happens before the insert; nothing is written on failure.
        """
        now = ensure_aware(now or utc_now()).astimezone(timezone.utc)
        decoded = self.codec.decode(payload.qr_code, now=now)
        identity = decoded.identity

        subject = await SubjectService(self.db).find_subject_by_id(identity.subject_id)
        if subject is None:
            raise SubjectNotFound(f"Subject {identity.subject_id} not found", subject_id=identity.subject_id)
        if not subject.is_active:
            raise SubjectInactive(f"Subject {subject.subject_code} is not active", subject_id=subject.subject_code)

        # stored in UTC; sqlite drops offsets
        scan_time = ensure_aware(payload.scan_time).astimezone(timezone.utc) if payload.scan_time else now
        validate_scan_time(scan_time, now, self.settings.SCAN_RETENTION_DAYS)

        local_scan = to_local(scan_time, self.settings.TIMEZONE)
        scan_date = local_scan.date()

        existing = await self.check_duplicate(subject.id, scan_date)
        if existing is not None:
            logger.info("Duplicate scan for subject %s on %s (record %s)", subject.subject_code, scan_date, existing.id)
            raise DuplicateScan(existing_record=record_to_dict(existing))

        classification = classify(local_scan, self.settings.DAY_START_MINUTE)

        geo = payload.geo_location
        device = payload.device_info
        record = AttendanceRecord(
            subject_id=subject.id,
            recorded_by=str(recorded_by) if recorded_by is not None else None,
            scan_time=scan_time,
            scan_date=scan_date,
            status=classification.status,
            time_window=classification.time_window,
            minutes_late=classification.minutes_late,
            location=payload.location or self.settings.DEFAULT_SCAN_LOCATION,
            notes=payload.notes,
            raw_code=payload.qr_code,
            latitude=geo.latitude if geo else None,
            longitude=geo.longitude if geo else None,
            accuracy=geo.accuracy if geo else None,
            device_platform=device.platform if device else None,
            device_user_agent=device.user_agent if device else None,
            device_ip=device.ip_address if device else None,
            is_valid_scan=True,
        )
        subject_id, subject_code = subject.id, subject.subject_code
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError:
            # lost the race against a concurrent scan of the same subject
            await self.db.rollback()
            existing = await self.check_duplicate(subject_id, scan_date)
            logger.warning("Concurrent duplicate scan rejected for subject %s on %s", subject_code, scan_date)
            raise DuplicateScan(existing_record=record_to_dict(existing) if existing else None)

        await self.db.refresh(record)
        logger.info(
            "Attendance recorded: subject=%s status=%s window=%s minutes_late=%s",
            subject.subject_code, classification.status.value,
            classification.time_window.value, classification.minutes_late,
        )
        return ScanResult(record=record, classification=classification, subject=subject)

    async def create_absence_record(self, subject: Subject, now: Optional[datetime] = None) -> AttendanceRecord:
        """
        Synthetic absence for the sweep. Raises IntegrityError (after rollback)
        if another run already created one for the same day.
        """
        now = ensure_aware(now or utc_now()).astimezone(timezone.utc)
        record = AttendanceRecord(
            subject_id=subject.id,
            recorded_by=None,
            scan_time=now,
            scan_date=local_today(self.settings.TIMEZONE, now),
            status=AttendanceStatus.absent,
            time_window=None,
            minutes_late=0,
            location="System Generated",
            notes="Automatically marked absent",
            is_valid_scan=False,
            invalid_reason=InvalidReason.absent,
        )
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        await self.db.refresh(record)
        return record

    # ─── administrative mutations ────────────────────────────────────────────

    async def invalidate(self, record_id: int, reason: InvalidReason = InvalidReason.manual) -> AttendanceRecord:
        record = await self.get_record(record_id)
        record.is_valid_scan = False
        record.invalid_reason = reason
        await self.db.commit()
        await self.db.refresh(record)
        logger.info("Attendance record %s invalidated (%s)", record_id, reason.value)
        return record

    async def correct_status(self, record_id: int, status: AttendanceStatus) -> AttendanceRecord:
        record = await self.get_record(record_id)
        previous = record.status
        record.status = status
        await self.db.commit()
        await self.db.refresh(record)
        logger.info("Attendance record %s status corrected: %s -> %s", record_id, previous.value, status.value)
        return record

    async def mark_notification(self, record_id: int, notification) -> Optional[AttendanceRecord]:
        """Copy the outcome of a notification onto the record's summary fields."""
        record = await self.db.get(AttendanceRecord, record_id)
        if record is None:
            logger.warning("Cannot update notification summary: record %s not found", record_id)
            return None

        sent_channels = notification.sent_channels()
        if len(sent_channels) > 1:
            method = NotificationMethod.multiple
        elif sent_channels:
            method = NotificationMethod(sent_channels[0])
        else:
            method = None

        record.notification_sent = bool(sent_channels)
        record.notification_method = method
        record.notification_status = notification.overall_status.value
        record.notification_sent_at = notification.last_sent_at() if sent_channels else None
        record.notification_error = notification.error_summary()
        await self.db.commit()
        await self.db.refresh(record)
        return record
