# api/attendance/attendance_classifier.py
"""
Lateness rules. Pure functions over wall-clock time; the caller converts the
scan instant to the organisation's local time first.
"""
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Union

from api.attendance.attendance_records_model import AttendanceStatus, TimeWindow
from utils.exceptions import InvalidScanTime
from utils.time_utils import ensure_aware, minute_of_day

DEFAULT_DAY_START_MINUTE = 480   # 08:00

EARLY_MARGIN = 30      # minutes before start that still count as "early" rather than on time
GRACE_PERIOD = 5       # on time until start + 5
LATE_LIMIT = 15        # "late" until start + 15, "very late" after


@dataclass(frozen=True)
class Classification:
    status: AttendanceStatus
    time_window: TimeWindow
    minutes_late: int = 0


def classify(scan_local_time: Union[datetime, time], day_start_minute: int = DEFAULT_DAY_START_MINUTE) -> Classification:
    t = minute_of_day(scan_local_time)
    start = day_start_minute

    if t < start - EARLY_MARGIN:
        return Classification(AttendanceStatus.present, TimeWindow.early)
    if t <= start + GRACE_PERIOD:
        return Classification(AttendanceStatus.present, TimeWindow.on_time)
    if t <= start + LATE_LIMIT:
        return Classification(AttendanceStatus.late, TimeWindow.late, t - start)
    return Classification(AttendanceStatus.late, TimeWindow.very_late, t - start)


def validate_scan_time(scan_time: datetime, now: datetime, retention_days: int = 7) -> None:
    scan_time = ensure_aware(scan_time)
    now = ensure_aware(now)
    if scan_time > now:
        raise InvalidScanTime("Scan time cannot be in the future", scan_time=scan_time.isoformat())
    if scan_time < now - timedelta(days=retention_days):
        raise InvalidScanTime(
            f"Scan time cannot be more than {retention_days} days in the past",
            scan_time=scan_time.isoformat(),
        )
