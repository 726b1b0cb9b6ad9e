import os

# settings are read once at import time
os.environ["ENVIRONMENT"] = "testing"
os.environ["SECRET_KEY"] = "test-secret-key-0123456789abcdef-0123456789"
os.environ["QR_SECRET"] = "test-qr-secret-0123456789abcdef-0123456789"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["TIMEZONE"] = "UTC"
os.environ["ABSENTEE_SCHEDULER_ENABLED"] = "false"
os.environ["ABSENTEE_CUTOFF_TIME"] = "09:30"
os.environ["ABSENTEE_DAYS"] = "mon-fri"
os.environ["NOTIFICATION_CHANNELS"] = "sms,email"
os.environ["NOTIFICATION_MAX_RETRIES"] = "3"
os.environ["NOTIFY_ON_SCAN"] = "true"
os.environ["AUTO_CREATE_TABLES"] = "true"

import asyncio
import itertools
import json

import pytest
from sqlalchemy.pool import NullPool

import models.index  # noqa: F401
from api.notifications.notifications_service import NotificationDispatcher
from api.qr_codes.qr_codes_schema import IdentitySnapshot
from api.qr_codes.qr_codes_service import get_qr_codec, snapshot_for_subject
from api.subjects.subjects_model import Subject, SubjectKind
from config.database import Base, build_engine, build_sessionmaker


class FakeSender:
    """Stands in for the Twilio / SMTP senders; records every call."""

    def __init__(self, fail=False, delay=0.0, fail_for=()):
        self.fail = fail
        self.delay = delay
        self.fail_for = set(fail_for)
        self.calls = []

    async def __call__(self, *args):
        self.calls.append(args)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail or args[0] in self.fail_for:
            raise RuntimeError("provider unavailable")
        return f"msg-{len(self.calls)}"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'attendance_test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_subject(db):
    counter = itertools.count(1)

    async def _make(**overrides):
        n = next(counter)
        values = {
            "subject_code": f"STU{n:03d}",
            "kind": SubjectKind.student,
            "display_name": f"Student {n}",
            "group_name": "5",
            "subgroup_name": "B",
            "contact_name": "Pat Guardian",
            "contact_phone": f"+1555000{n:04d}",
            "contact_email": f"guardian{n}@example.com",
            "is_active": True,
        }
        values.update(overrides)
        subject = Subject(**values)
        db.add(subject)
        await db.commit()
        await db.refresh(subject)
        return subject

    return _make


@pytest.fixture
def qr_for():
    """Signed payload string for a subject (or a bare identity snapshot)."""

    def _qr_for(subject_or_snapshot, issued_at=None):
        if isinstance(subject_or_snapshot, IdentitySnapshot):
            snapshot = subject_or_snapshot
        else:
            snapshot = snapshot_for_subject(subject_or_snapshot)
        return json.dumps(get_qr_codec().build_payload(snapshot, issued_at))

    return _qr_for


@pytest.fixture
def sms_sender():
    return FakeSender()


@pytest.fixture
def email_sender():
    return FakeSender()


@pytest.fixture
def dispatcher(session_factory, sms_sender, email_sender):
    return NotificationDispatcher(
        session_factory=session_factory,
        sms_sender=sms_sender,
        email_sender=email_sender,
    )
