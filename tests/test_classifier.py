from datetime import datetime, time, timedelta, timezone

import pytest

from api.attendance.attendance_classifier import Classification, classify, validate_scan_time
from api.attendance.attendance_records_model import AttendanceStatus, TimeWindow
from utils.exceptions import InvalidScanTime

PRESENT = AttendanceStatus.present
LATE = AttendanceStatus.late


@pytest.mark.parametrize("hour,minute,expected", [
    (6, 0, Classification(PRESENT, TimeWindow.early)),
    (7, 29, Classification(PRESENT, TimeWindow.early)),
    (7, 30, Classification(PRESENT, TimeWindow.on_time)),
    (8, 0, Classification(PRESENT, TimeWindow.on_time)),
    (8, 5, Classification(PRESENT, TimeWindow.on_time)),
    (8, 6, Classification(LATE, TimeWindow.late, 6)),
    (8, 15, Classification(LATE, TimeWindow.late, 15)),
    (8, 16, Classification(LATE, TimeWindow.very_late, 16)),
    (8, 20, Classification(LATE, TimeWindow.very_late, 20)),
    (13, 0, Classification(LATE, TimeWindow.very_late, 300)),
])
def test_default_day_start_boundaries(hour, minute, expected):
    assert classify(time(hour, minute)) == expected


def test_seconds_do_not_move_a_scan_into_the_next_window():
    assert classify(time(8, 5, 59)) == Classification(PRESENT, TimeWindow.on_time)


def test_custom_day_start():
    # 09:00 start
    assert classify(time(8, 45), 540) == Classification(PRESENT, TimeWindow.on_time)
    assert classify(time(9, 10), 540) == Classification(LATE, TimeWindow.late, 10)


def test_accepts_local_datetimes():
    local = datetime(2026, 3, 2, 8, 10, tzinfo=timezone(timedelta(hours=-5)))
    assert classify(local) == Classification(LATE, TimeWindow.late, 10)


def test_minutes_late_is_zero_unless_late():
    for minute_of_day in range(0, 24 * 60, 7):
        result = classify(time(minute_of_day // 60, minute_of_day % 60))
        if result.status is PRESENT:
            assert result.minutes_late == 0
        else:
            assert result.minutes_late == minute_of_day - 480 > 5


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def test_scan_time_now_and_recent_past_are_accepted():
    validate_scan_time(NOW, NOW)
    validate_scan_time(NOW - timedelta(days=7), NOW)
    # naive values are treated as UTC
    validate_scan_time(datetime(2026, 3, 2, 11, 0), NOW)


def test_future_scan_time_is_rejected():
    with pytest.raises(InvalidScanTime):
        validate_scan_time(NOW + timedelta(seconds=1), NOW)


def test_scan_older_than_retention_is_rejected():
    with pytest.raises(InvalidScanTime) as exc:
        validate_scan_time(NOW - timedelta(days=7, seconds=1), NOW)
    assert "7 days" in exc.value.message

    with pytest.raises(InvalidScanTime):
        validate_scan_time(NOW - timedelta(days=3), NOW, retention_days=2)
