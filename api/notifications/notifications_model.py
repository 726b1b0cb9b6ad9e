# api/notifications/notifications_model.py

from sqlalchemy import (
    Column,
    Integer,
    Text,
    String,
    Boolean,
    Enum,
    ForeignKey,
    DateTime,
    func,
)
import enum
from config.database import Base
from utils.time_utils import ensure_aware

CHANNELS = ("sms", "email")


class NotificationType(enum.Enum):
    attendance   = "attendance"
    absence      = "absence"
    alert        = "alert"
    announcement = "announcement"


class NotificationPriority(enum.Enum):
    low    = "low"
    normal = "normal"
    high   = "high"


class ChannelStatus(enum.Enum):
    pending   = "pending"
    sent      = "sent"
    delivered = "delivered"
    failed    = "failed"


class OverallStatus(enum.Enum):
    pending = "pending"
    partial = "partial"
    sent    = "sent"
    failed  = "failed"


DELIVERED_STATES = (ChannelStatus.sent, ChannelStatus.delivered)


def derive_overall_status(statuses) -> OverallStatus:
    """
    Aggregate the statuses of the enabled channels. With no enabled channel
    the notification stays pending.
    """
    statuses = list(statuses)
    if not statuses:
        return OverallStatus.pending
    delivered = [s for s in statuses if s in DELIVERED_STATES]
    if len(delivered) == len(statuses):
        return OverallStatus.sent
    if all(s is ChannelStatus.failed for s in statuses):
        return OverallStatus.failed
    if delivered:
        return OverallStatus.partial
    return OverallStatus.pending


def _channel_status_column():
    return Column(
        Enum(ChannelStatus, name="notification_channel_status"),
        nullable=False,
        default=ChannelStatus.pending,
    )


class Notification(Base):
    __tablename__ = "notifications"

    id                   = Column(Integer, primary_key=True, index=True)
    subject_id           = Column(Integer, ForeignKey("subjects.id"), nullable=False, index=True)
    attendance_record_id = Column(Integer, ForeignKey("attendance_records.id"), nullable=True, index=True)
    type = Column(
        Enum(NotificationType, name="notification_type"),
        nullable=False,
        default=NotificationType.attendance,
    )
    priority = Column(
        Enum(NotificationPriority, name="notification_priority"),
        nullable=False,
        default=NotificationPriority.normal,
    )

    contact_name  = Column(String(150), nullable=True)
    contact_phone = Column(String(30), nullable=True)
    contact_email = Column(String(255), nullable=True)
    subject_line  = Column(String(200), nullable=True)
    message       = Column(Text, nullable=False)
    sms_message   = Column(Text, nullable=True)    # short form for SMS; falls back to message

    # SMS channel
    sms_enabled    = Column(Boolean, nullable=False, default=False)
    sms_status     = _channel_status_column()
    sms_attempts   = Column(Integer, nullable=False, default=0)
    sms_sent_at    = Column(DateTime(timezone=True), nullable=True)
    sms_message_id = Column(String(100), nullable=True)
    sms_error      = Column(Text, nullable=True)

    # Email channel
    email_enabled    = Column(Boolean, nullable=False, default=False)
    email_status     = _channel_status_column()
    email_attempts   = Column(Integer, nullable=False, default=0)
    email_sent_at    = Column(DateTime(timezone=True), nullable=True)
    email_message_id = Column(String(255), nullable=True)
    email_error      = Column(Text, nullable=True)

    overall_status = Column(
        Enum(OverallStatus, name="notification_overall_status"),
        nullable=False,
        default=OverallStatus.pending,
        index=True,
    )
    retry_count = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # ─── channel helpers ─────────────────────────────────────────────────────

    def is_enabled(self, channel: str) -> bool:
        return bool(getattr(self, f"{channel}_enabled"))

    def get_status(self, channel: str) -> ChannelStatus:
        return getattr(self, f"{channel}_status") or ChannelStatus.pending

    def enabled_channels(self):
        return [ch for ch in CHANNELS if self.is_enabled(ch)]

    def unsent_channels(self):
        return [ch for ch in self.enabled_channels() if self.get_status(ch) not in DELIVERED_STATES]

    def sent_channels(self):
        return [ch for ch in self.enabled_channels() if self.get_status(ch) in DELIVERED_STATES]

    def record_attempt(self, channel: str, status: ChannelStatus, sent_at=None, message_id=None, error=None):
        setattr(self, f"{channel}_attempts", (getattr(self, f"{channel}_attempts") or 0) + 1)
        setattr(self, f"{channel}_status", status)
        if status in DELIVERED_STATES:
            setattr(self, f"{channel}_sent_at", sent_at)
            setattr(self, f"{channel}_message_id", message_id)
            setattr(self, f"{channel}_error", None)
        else:
            setattr(self, f"{channel}_error", error)
        self.refresh_overall_status()

    def mark_failed(self, channel: str, error: str):
        setattr(self, f"{channel}_status", ChannelStatus.failed)
        if error and not getattr(self, f"{channel}_error"):
            setattr(self, f"{channel}_error", error)
        self.refresh_overall_status()

    def refresh_overall_status(self):
        self.overall_status = derive_overall_status([self.get_status(ch) for ch in self.enabled_channels()])
        return self.overall_status

    def last_sent_at(self):
        stamps = [getattr(self, f"{ch}_sent_at") for ch in self.sent_channels()]
        stamps = [ensure_aware(s) for s in stamps if s is not None]
        return max(stamps) if stamps else None

    def error_summary(self):
        errors = [
            f"{ch}: {getattr(self, f'{ch}_error')}"
            for ch in self.enabled_channels()
            if getattr(self, f"{ch}_error")
        ]
        return "; ".join(errors) or None
