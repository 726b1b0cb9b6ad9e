import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from api.absentees.absentees_scheduler import JOB_ID, AbsenteeScheduler, describe_days
from api.absentees.absentees_service import AbsenteeSweep, SweepState
from api.attendance.attendance_records_model import AttendanceStatus, InvalidReason, NotificationMethod
from api.attendance.attendance_schema import ScanIn
from api.attendance.attendance_service import AttendanceService
from api.notifications.notifications_model import Notification, NotificationType, OverallStatus
from config.settings import settings
from utils.exceptions import SweepAlreadyRunning

pytestmark = pytest.mark.anyio

# Monday 09:30 UTC, the configured cutoff
NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)
TODAY = NOW.date()


@pytest.fixture
def sweep(dispatcher, session_factory):
    return AbsenteeSweep(dispatcher, session_factory=session_factory)


async def _scan(db, qr_for, subject, at=NOW - timedelta(hours=1, minutes=25)):
    return await AttendanceService(db).record_scan(ScanIn(qr_code=qr_for(subject)), recorded_by=1, now=at)


async def test_absent_subjects_excludes_present_and_inactive(db, make_subject, qr_for, sweep):
    present = await make_subject()
    absent = await make_subject()
    await make_subject(is_active=False)
    await _scan(db, qr_for, present)

    absentees = await sweep.get_absent_subjects(db, TODAY)

    assert [s.id for s in absentees] == [absent.id]
    assert await sweep.get_absent_subjects(db, TODAY + timedelta(days=1)) != []


async def test_sweep_records_and_notifies_each_absentee(db, make_subject, qr_for, sweep, sms_sender, email_sender):
    present = await make_subject()
    absent = await make_subject()
    await make_subject(is_active=False)
    await _scan(db, qr_for, present)

    summary = await sweep.run(now=NOW)

    assert summary["date"] == "2026-03-02"
    assert summary["trigger"] == "manual"
    assert summary["total_active"] == 2
    assert summary["total"] == 1
    assert summary["records_created"] == 1
    assert summary["skipped"] == 0
    assert summary["sms_sent"] == 1
    assert summary["emails_sent"] == 1
    assert summary["error_count"] == 0
    assert summary["retried"]["checked"] == 0
    [result] = summary["results"]
    assert result["subject_id"] == absent.id

    record = await AttendanceService(db).find_absence_record(absent.id, TODAY)
    assert record.status is AttendanceStatus.absent
    assert record.is_valid_scan is False
    assert record.invalid_reason is InvalidReason.absent
    assert record.notification_sent is True
    assert record.notification_method is NotificationMethod.multiple

    notification = await db.get(Notification, result["notification_id"])
    assert notification.type is NotificationType.absence
    assert notification.attendance_record_id == record.id

    assert [call[0] for call in sms_sender.calls] == [absent.contact_phone]
    assert "has not been marked present at school as of 09:30" in sms_sender.calls[0][1]
    assert email_sender.calls[0][1] == f"Attendance Alert: {absent.display_name} - Absent Today"
    assert sweep.last_summary is summary
    assert sweep.state is SweepState.idle


async def test_three_active_subjects_two_scanned(db, make_subject, qr_for, sweep, sms_sender, email_sender):
    first = await make_subject()
    second = await make_subject()
    missing = await make_subject()
    await _scan(db, qr_for, first)
    await _scan(db, qr_for, second, at=NOW - timedelta(minutes=20))

    summary = await sweep.run(now=NOW)

    assert summary["total_active"] == 3
    assert summary["records_created"] == 1
    assert [r["subject_id"] for r in summary["results"]] == [missing.id]

    records = await AttendanceService(db).list_records_for_day(TODAY)
    synthetic = [r for r in records if r.invalid_reason is InvalidReason.absent]
    assert [r.subject_id for r in synthetic] == [missing.id]
    assert sum(1 for r in records if r.is_valid_scan) == 2

    notifications = (await db.execute(select(Notification))).scalars().all()
    assert [n.subject_id for n in notifications] == [missing.id]
    assert len(sms_sender.calls) == 1 and len(email_sender.calls) == 1


async def test_rerunning_the_sweep_on_the_same_day_is_a_noop(db, make_subject, sweep, sms_sender):
    absent = await make_subject()

    await sweep.run(now=NOW)
    second = await sweep.run(now=NOW + timedelta(minutes=30))

    assert second["records_created"] == 0
    assert second["skipped"] == 1
    assert len(sms_sender.calls) == 1
    records = await AttendanceService(db).list_records_for_day(TODAY)
    assert [r.subject_id for r in records] == [absent.id]


async def test_absentee_without_contact_details_still_gets_a_record(db, make_subject, sweep):
    unreachable = await make_subject(contact_phone=None, contact_email=None)
    reachable = await make_subject()

    summary = await sweep.run(now=NOW)

    assert summary["records_created"] == 2
    assert summary["error_count"] == 1
    by_subject = {r["subject_id"]: r for r in summary["results"]}
    assert by_subject[unreachable.id]["errors"]
    assert by_subject[reachable.id]["errors"] == []

    record = await AttendanceService(db).find_absence_record(unreachable.id, TODAY)
    assert record.notification_sent is False
    assert record.notification_status == OverallStatus.pending.value


async def test_failed_channel_is_reported_per_subject(make_subject, sweep, email_sender):
    await make_subject()
    email_sender.fail = True

    summary = await sweep.run(now=NOW)

    [result] = summary["results"]
    assert result["sms_sent"] is True
    assert result["email_sent"] is False
    assert result["errors"] == ["EMAIL sending failed: provider unavailable"]
    assert summary["error_count"] == 1


async def test_sweep_retries_earlier_pending_notifications(db, make_subject, dispatcher, sweep, sms_sender):
    earlier = await make_subject()
    sms_sender.fail = True
    await dispatcher.send(db, earlier, "Reminder")
    sms_sender.fail = False

    summary = await sweep.run(now=NOW)

    # the earlier partial notification is retried; today's absence notice is not
    assert summary["retried"]["checked"] == 1
    assert summary["retried"]["sent"] == 1


async def test_overlapping_runs_are_refused(make_subject, sweep, sms_sender):
    await make_subject()
    sms_sender.delay = 0.2

    results = await asyncio.gather(sweep.run(now=NOW), sweep.run(now=NOW), return_exceptions=True)

    refused = [r for r in results if isinstance(r, SweepAlreadyRunning)]
    finished = [r for r in results if isinstance(r, dict)]
    assert len(refused) == 1
    assert len(finished) == 1
    assert refused[0].status_code == 409


async def test_manual_absence_notification_with_custom_message(db, make_subject, sweep, sms_sender, email_sender):
    subject = await make_subject()

    [result] = await sweep.send_absence_notifications(db, [subject], "Please call the office.")

    assert result["sms_sent"] is True and result["email_sent"] is True
    assert sms_sender.calls[0][1] == "Please call the office."
    assert "Please call the office." in email_sender.calls[0][2]
    # no attendance record is created for a manual notice
    assert await AttendanceService(db).list_records_for_day(TODAY) == []


async def test_scheduler_registers_one_weekday_job(sweep):
    scheduler = AbsenteeScheduler(sweep)
    scheduler.start()
    scheduler.start()
    try:
        info = scheduler.info()
        assert info["cron_expression"] == "30 9 * * mon-fri"
        assert info["cutoff_time"] == "09:30"
        assert info["timezone"] == settings.TIMEZONE
        assert info["description"] == "Runs at 09:30 on Monday to Friday"
        assert info["active_jobs"] == [JOB_ID]
        assert info["next_run_time"] is not None
        assert info["state"] == "idle"
    finally:
        scheduler.shutdown()

    assert scheduler.info()["active_jobs"] == []


async def test_stopping_the_scheduler_keeps_it_restartable(sweep):
    scheduler = AbsenteeScheduler(sweep)
    scheduler.start()
    try:
        scheduler.stop()
        assert scheduler.info()["active_jobs"] == []
        scheduler.start()
        assert scheduler.info()["active_jobs"] == [JOB_ID]
    finally:
        scheduler.shutdown()


async def test_trigger_fires_on_configured_weekdays_at_the_cutoff():
    scheduler = AbsenteeScheduler(SimpleNamespace(state=SweepState.idle, last_summary=None))
    trigger = scheduler.build_trigger()

    assert "day_of_week='mon-fri'" in str(trigger)
    assert "hour='9'" in str(trigger)
    assert "minute='30'" in str(trigger)

    friday = datetime(2026, 3, 6, 10, 0, tzinfo=timezone.utc)
    next_fire = trigger.get_next_fire_time(None, friday)
    assert next_fire.weekday() == 0
    assert (next_fire.hour, next_fire.minute) == (9, 30)


def test_describe_days():
    assert describe_days("mon-fri") == "Monday to Friday"
    assert describe_days("sat,sun") == "Saturday, Sunday"
