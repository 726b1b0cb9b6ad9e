# api/notifications/notifications_schema.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Dict, List, Literal, Optional

from api.notifications.notifications_model import (
    ChannelStatus,
    NotificationPriority,
    NotificationType,
    OverallStatus,
)

Channel = Literal["sms", "email"]


class ChannelStateOut(BaseModel):
    enabled: bool
    status: ChannelStatus
    attempts: int = 0
    sent_at: Optional[datetime] = None
    message_id: Optional[str] = None
    error_message: Optional[str] = None


class NotificationRead(BaseModel):
    id: int
    subject_id: int
    attendance_record_id: Optional[int] = None
    type: NotificationType
    priority: NotificationPriority
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    subject_line: Optional[str] = None
    message: str
    channels: Dict[str, ChannelStateOut]
    overall_status: OverallStatus
    retry_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, notification) -> "NotificationRead":
        channels = {
            ch: ChannelStateOut(
                enabled=notification.is_enabled(ch),
                status=notification.get_status(ch),
                attempts=getattr(notification, f"{ch}_attempts") or 0,
                sent_at=getattr(notification, f"{ch}_sent_at"),
                message_id=getattr(notification, f"{ch}_message_id"),
                error_message=getattr(notification, f"{ch}_error"),
            )
            for ch in ("sms", "email")
        }
        return cls(
            id=notification.id,
            subject_id=notification.subject_id,
            attendance_record_id=notification.attendance_record_id,
            type=notification.type,
            priority=notification.priority,
            contact_name=notification.contact_name,
            contact_phone=notification.contact_phone,
            contact_email=notification.contact_email,
            subject_line=notification.subject_line,
            message=notification.message,
            channels=channels,
            overall_status=notification.overall_status,
            retry_count=notification.retry_count,
            created_at=notification.created_at,
            updated_at=notification.updated_at,
        )


class SendNotificationIn(BaseModel):
    subject_id: int
    message: str = Field(..., min_length=1, max_length=1600)
    channels: List[Channel] = Field(default_factory=lambda: ["sms", "email"], min_length=1)
    subject_line: Optional[str] = Field(default=None, max_length=200)
    type: NotificationType = NotificationType.alert
    priority: NotificationPriority = NotificationPriority.normal


class BulkSendIn(BaseModel):
    subject_ids: List[int] = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=1600)
    channels: List[Channel] = Field(default_factory=lambda: ["sms", "email"], min_length=1)
    subject_line: Optional[str] = Field(default=None, max_length=200)


class BulkResultOut(BaseModel):
    subject_id: int
    subject_name: Optional[str] = None
    success: bool
    notification_id: Optional[int] = None
    overall_status: Optional[str] = None
    channels: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None


class BulkSendOut(BaseModel):
    total: int
    successful: int
    failed: int
    results: List[BulkResultOut]


class RetrySummaryOut(BaseModel):
    checked: int
    sent: int
    partial: int
    failed: int
    pending: int
