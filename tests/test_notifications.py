from datetime import datetime, timezone

import pytest
from fastapi import BackgroundTasks

from api.attendance.attendance_records_model import NotificationMethod
from api.attendance.attendance_schema import ScanIn
from api.attendance.attendance_service import AttendanceService
from api.notifications.notifications_model import (
    ChannelStatus,
    Notification,
    NotificationType,
    OverallStatus,
    derive_overall_status,
)
from api.notifications.notifications_service import attendance_recorded
from utils.exceptions import NoDeliverableChannel

pytestmark = pytest.mark.anyio

NOW = datetime(2026, 3, 2, 8, 20, tzinfo=timezone.utc)

SENT = ChannelStatus.sent
FAILED = ChannelStatus.failed
PENDING = ChannelStatus.pending


@pytest.mark.parametrize("statuses,expected", [
    ([], OverallStatus.pending),
    ([SENT], OverallStatus.sent),
    ([SENT, ChannelStatus.delivered], OverallStatus.sent),
    ([FAILED], OverallStatus.failed),
    ([FAILED, FAILED], OverallStatus.failed),
    ([SENT, FAILED], OverallStatus.partial),
    ([SENT, PENDING], OverallStatus.partial),
    ([PENDING, FAILED], OverallStatus.pending),
    ([PENDING], OverallStatus.pending),
])
def test_overall_status(statuses, expected):
    assert derive_overall_status(statuses) is expected


async def test_send_delivers_on_every_enabled_channel(db, make_subject, dispatcher, sms_sender, email_sender):
    subject = await make_subject()

    notification = await dispatcher.send(db, subject, "School closes early today.", subject_line="Early closing")

    assert notification.id is not None
    assert notification.overall_status is OverallStatus.sent
    assert notification.sms_status is SENT and notification.email_status is SENT
    assert notification.sms_attempts == 1 and notification.email_attempts == 1
    assert notification.sms_message_id == "msg-1"
    assert notification.sms_sent_at is not None

    assert sms_sender.calls == [(subject.contact_phone, "School closes early today.")]
    to, subject_line, body, html_body = email_sender.calls[0]
    assert to == subject.contact_email
    assert subject_line == "Early closing"
    assert body == "School closes early today."
    assert "School closes early today." in html_body


async def test_sms_uses_the_short_message_when_given(db, make_subject, dispatcher, sms_sender, email_sender):
    subject = await make_subject()

    await dispatcher.send(db, subject, "A long body\nwith details", sms_message="Short text")

    assert sms_sender.calls[0][1] == "Short text"
    assert email_sender.calls[0][2] == "A long body\nwith details"


async def test_one_failing_channel_leaves_a_partial_notification(db, make_subject, dispatcher, sms_sender):
    subject = await make_subject()
    sms_sender.fail = True

    notification = await dispatcher.send(db, subject, "Hello")

    assert notification.overall_status is OverallStatus.partial
    assert notification.sms_status is FAILED
    assert notification.sms_error == "SMS sending failed: provider unavailable"
    assert notification.email_status is SENT
    assert notification.error_summary() == "sms: SMS sending failed: provider unavailable"


async def test_every_channel_failing(db, make_subject, dispatcher, sms_sender, email_sender):
    subject = await make_subject()
    sms_sender.fail = True
    email_sender.fail = True

    notification = await dispatcher.send(db, subject, "Hello")

    assert notification.overall_status is OverallStatus.failed


async def test_slow_provider_times_out_without_blocking_the_other(db, make_subject, dispatcher, sms_sender):
    subject = await make_subject()
    sms_sender.delay = 1.0
    dispatcher.timeouts["sms"] = 0.05

    notification = await dispatcher.send(db, subject, "Hello")

    assert notification.sms_status is FAILED
    assert "timed out" in notification.sms_error
    assert notification.email_status is SENT
    assert notification.overall_status is OverallStatus.partial


async def test_only_requested_channels_with_an_address_are_enabled(db, make_subject, dispatcher, sms_sender, email_sender):
    subject = await make_subject()
    email_only = await dispatcher.send(db, subject, "Hello", channels=["email"])
    assert email_only.enabled_channels() == ["email"]
    assert sms_sender.calls == []

    no_phone = await make_subject(contact_phone=None)
    notification = await dispatcher.send(db, no_phone, "Hello")
    assert notification.enabled_channels() == ["email"]
    assert notification.overall_status is OverallStatus.sent


async def test_no_contact_details_persists_a_pending_notification(db, make_subject, dispatcher, sms_sender, email_sender):
    subject = await make_subject(contact_phone=None, contact_email=None)

    with pytest.raises(NoDeliverableChannel) as exc:
        await dispatcher.send(db, subject, "Hello")

    notification = await db.get(Notification, exc.value.notification_id)
    assert notification.overall_status is OverallStatus.pending
    assert notification.enabled_channels() == []
    assert sms_sender.calls == [] and email_sender.calls == []


async def test_retry_completes_a_partial_notification(db, make_subject, dispatcher, sms_sender, email_sender):
    subject = await make_subject()
    sms_sender.fail = True
    notification = await dispatcher.send(db, subject, "Hello")
    sms_sender.fail = False

    summary = await dispatcher.retry_pending(db)

    assert summary == {"checked": 1, "sent": 1, "partial": 0, "failed": 0, "pending": 0}
    await db.refresh(notification)
    assert notification.overall_status is OverallStatus.sent
    assert notification.retry_count == 1
    assert notification.sms_attempts == 2
    # the delivered channel is not sent twice
    assert notification.email_attempts == 1
    assert len(email_sender.calls) == 1


async def test_retry_gives_up_after_the_retry_limit(db, make_subject, dispatcher, sms_sender):
    subject = await make_subject()
    sms_sender.fail = True
    notification = await dispatcher.send(db, subject, "Hello")

    for _ in range(dispatcher.max_retries):
        await dispatcher.retry_pending(db)

    await db.refresh(notification)
    assert notification.retry_count == dispatcher.max_retries
    assert notification.sms_attempts == dispatcher.max_retries + 1
    assert notification.sms_status is FAILED
    assert notification.overall_status is OverallStatus.partial
    assert (await dispatcher.retry_pending(db))["checked"] == 0


async def test_terminal_and_undeliverable_notifications_are_not_retried(db, make_subject, dispatcher, sms_sender, email_sender):
    sms_sender.fail = True
    email_sender.fail = True
    await dispatcher.send(db, await make_subject(), "Hello")
    with pytest.raises(NoDeliverableChannel):
        await dispatcher.send(db, await make_subject(contact_phone=None, contact_email=None), "Hello")

    summary = await dispatcher.retry_pending(db)

    assert summary["checked"] == 0


async def test_retry_skips_excluded_notifications(db, make_subject, dispatcher, sms_sender):
    sms_sender.fail = True
    first = await dispatcher.send(db, await make_subject(), "Hello")
    await dispatcher.send(db, await make_subject(), "Hello")

    summary = await dispatcher.retry_pending(db, exclude_ids=[first.id])

    assert summary["checked"] == 1


async def test_bulk_send_isolates_each_subject(db, make_subject, dispatcher, email_sender):
    ok = await make_subject()
    unreachable = await make_subject(contact_phone=None, contact_email=None)
    bouncing = await make_subject(contact_phone=None)
    email_sender.fail_for = {bouncing.contact_email}

    results = await dispatcher.bulk_send(db, [ok, unreachable, bouncing], "Term starts Monday")

    by_subject = {r.subject_id: r for r in results}
    assert by_subject[ok.id].success is True
    assert by_subject[ok.id].channels == {"sms": "sent", "email": "sent"}
    assert by_subject[unreachable.id].success is False
    assert by_subject[unreachable.id].overall_status == "pending"
    assert by_subject[unreachable.id].notification_id is not None
    assert by_subject[bouncing.id].success is False
    assert by_subject[bouncing.id].overall_status == "failed"
    assert "EMAIL sending failed" in by_subject[bouncing.id].error

    announcement = await db.get(Notification, by_subject[ok.id].notification_id)
    assert announcement.type is NotificationType.announcement


async def test_attendance_notification_updates_the_record(db, make_subject, qr_for, dispatcher, sms_sender):
    subject = await make_subject()
    scan = await AttendanceService(db).record_scan(ScanIn(qr_code=qr_for(subject)), recorded_by=1, now=NOW)

    notification = await dispatcher.notify_attendance(scan.record.id)

    assert notification.type is NotificationType.attendance
    assert notification.attendance_record_id == scan.record.id
    assert "arrived late" in sms_sender.calls[0][1]
    assert "(20 minutes late)" in sms_sender.calls[0][1]

    record = scan.record
    await db.refresh(record)
    assert record.notification_sent is True
    assert record.notification_method is NotificationMethod.multiple
    assert record.notification_status == "sent"
    assert record.notification_error is None


async def test_attendance_notification_failure_is_recorded_not_raised(db, make_subject, qr_for, dispatcher, sms_sender, email_sender):
    subject = await make_subject(contact_email=None)
    sms_sender.fail = True
    scan = await AttendanceService(db).record_scan(ScanIn(qr_code=qr_for(subject)), recorded_by=1, now=NOW)

    notification = await dispatcher.notify_attendance(scan.record.id)

    assert notification.overall_status is OverallStatus.failed
    record = scan.record
    await db.refresh(record)
    assert record.notification_sent is False
    assert record.notification_status == "failed"
    assert "provider unavailable" in record.notification_error


async def test_notification_for_a_missing_record_is_logged_and_dropped(dispatcher):
    assert await dispatcher.notify_attendance(999) is None


async def test_recorded_scan_schedules_a_background_notification(dispatcher):
    tasks = BackgroundTasks()

    attendance_recorded.send("scanner", record_id=5, dispatcher=dispatcher, background_tasks=tasks)

    assert len(tasks.tasks) == 1
    assert tasks.tasks[0].func == dispatcher.notify_attendance
    assert tasks.tasks[0].args == (5,)


async def test_provider_status_reports_configuration(dispatcher):
    status = dispatcher.provider_status()

    assert status["sms"]["configured"] is False
    assert status["email"]["configured"] is False
    assert status["channels"] == ["sms", "email"]
    assert status["max_retries"] == 3
