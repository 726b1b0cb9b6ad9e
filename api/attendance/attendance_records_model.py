from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Text,
    func,
    text,
)
import enum
from config.database import Base


class AttendanceStatus(enum.Enum):
    present = "present"
    late    = "late"
    absent  = "absent"


class TimeWindow(enum.Enum):
    early     = "early"
    on_time   = "on_time"
    late      = "late"
    very_late = "very_late"


class InvalidReason(enum.Enum):
    duplicate      = "duplicate"
    expired        = "expired"
    invalid_qr     = "invalid_qr"
    wrong_location = "wrong_location"
    outside_hours  = "outside_hours"
    absent         = "absent"
    manual         = "manual"


class NotificationMethod(enum.Enum):
    sms      = "sms"
    email    = "email"
    multiple = "multiple"


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        # one valid scan per subject per local day
        Index(
            "uq_attendance_valid_scan_per_day",
            "subject_id", "scan_date",
            unique=True,
            sqlite_where=text("is_valid_scan = 1"),
            postgresql_where=text("is_valid_scan"),
        ),
        # one synthetic absence per subject per local day
        Index(
            "uq_attendance_absence_per_day",
            "subject_id", "scan_date",
            unique=True,
            sqlite_where=text("invalid_reason = 'absent'"),
            postgresql_where=text("invalid_reason = 'absent'"),
        ),
        Index("ix_attendance_scan_date_status", "scan_date", "status"),
    )

    id             = Column(Integer, primary_key=True, index=True)
    subject_id     = Column(Integer, ForeignKey("subjects.id"), nullable=False, index=True)
    recorded_by    = Column(String(64), nullable=True)   # staff id claim from the token; null for the sweep
    scan_time      = Column(DateTime(timezone=True), nullable=False)   # UTC
    scan_date      = Column(Date, nullable=False)                      # local calendar day
    status         = Column(Enum(AttendanceStatus, name="attendance_status"), nullable=False, default=AttendanceStatus.present)
    time_window    = Column(Enum(TimeWindow, name="attendance_time_window"), nullable=True)
    minutes_late   = Column(Integer, nullable=False, default=0)
    location       = Column(String(100), nullable=True)
    notes          = Column(String(200), nullable=True)
    raw_code       = Column(Text, nullable=True)

    latitude       = Column(Float, nullable=True)
    longitude      = Column(Float, nullable=True)
    accuracy       = Column(Float, nullable=True)
    device_platform   = Column(String(50), nullable=True)
    device_user_agent = Column(String(255), nullable=True)
    device_ip         = Column(String(64), nullable=True)

    is_valid_scan  = Column(Boolean, nullable=False, default=True)
    invalid_reason = Column(Enum(InvalidReason, name="attendance_invalid_reason", native_enum=False), nullable=True)

    # denormalized summary of the latest notification for this record
    notification_sent    = Column(Boolean, nullable=False, default=False)
    notification_method  = Column(Enum(NotificationMethod, name="attendance_notification_method"), nullable=True)
    notification_status  = Column(String(20), nullable=True)
    notification_sent_at = Column(DateTime(timezone=True), nullable=True)
    notification_error   = Column(Text, nullable=True)

    created_at     = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at     = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

