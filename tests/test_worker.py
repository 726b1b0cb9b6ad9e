from datetime import datetime, timezone

import pytest

import worker_main
from api.absentees.absentees_scheduler import build_cron_trigger
from config.settings import settings

pytestmark = pytest.mark.anyio

SUNDAY_NIGHT = datetime(2026, 3, 1, 3, 0, tzinfo=timezone.utc)
MONDAY_CUTOFF = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)
TUESDAY_CUTOFF = datetime(2026, 3, 3, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def runs(monkeypatch):
    calls = []

    async def fake_check():
        calls.append(True)
        return {}

    monkeypatch.setattr(worker_main, "run_absentee_check", fake_check)
    return calls


@pytest.fixture
def trigger():
    return build_cron_trigger(settings)


async def test_loop_does_nothing_before_the_cutoff(trigger, runs):
    due_at = trigger.get_next_fire_time(None, SUNDAY_NIGHT)
    assert due_at == MONDAY_CUTOFF

    for now in (SUNDAY_NIGHT, datetime(2026, 3, 2, 9, 29, 59, tzinfo=timezone.utc)):
        assert await worker_main.run_when_due(trigger, due_at, now) == MONDAY_CUTOFF

    assert runs == []


async def test_loop_runs_once_at_the_cutoff_then_waits_for_the_next_weekday(trigger, runs):
    due_at = await worker_main.run_when_due(trigger, MONDAY_CUTOFF, datetime(2026, 3, 2, 9, 30, 20, tzinfo=timezone.utc))

    assert runs == [True]
    assert due_at == TUESDAY_CUTOFF

    # later ticks the same day do not sweep again
    assert await worker_main.run_when_due(trigger, due_at, datetime(2026, 3, 2, 9, 31, tzinfo=timezone.utc)) == TUESDAY_CUTOFF
    assert runs == [True]


async def test_friday_sweep_is_followed_by_monday(trigger, runs):
    friday_cutoff = datetime(2026, 3, 6, 9, 30, tzinfo=timezone.utc)

    due_at = await worker_main.run_when_due(trigger, friday_cutoff, friday_cutoff)

    assert runs == [True]
    assert due_at == datetime(2026, 3, 9, 9, 30, tzinfo=timezone.utc)


async def test_failed_sweep_keeps_the_loop_on_schedule(trigger, monkeypatch):
    async def broken_check():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(worker_main, "run_absentee_check", broken_check)

    assert await worker_main.run_when_due(trigger, MONDAY_CUTOFF, MONDAY_CUTOFF) == TUESDAY_CUTOFF
