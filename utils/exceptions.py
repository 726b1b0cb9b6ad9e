"""
Error taxonomy for the attendance core.

Every error carries an HTTP status code and a ``kind`` string so the API
layer can render it without knowing the concrete class.
"""
from typing import Any, Dict, List, Optional


class AttendanceError(Exception):
    """Base class for business rule violations."""

    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.details}


# QR codec
class QrDecodeError(AttendanceError):
    """Raised when a QR payload cannot be turned into an identity."""


class MalformedPayload(QrDecodeError):
    pass


class IntegrityCheckFailed(QrDecodeError):
    pass


class Expired(QrDecodeError):
    pass


class MissingFields(QrDecodeError):
    def __init__(self, fields: List[str]):
        super().__init__(f"QR code missing required fields: {', '.join(fields)}", fields=fields)
        self.fields = fields


# Classifier / recording
class DuplicateScan(AttendanceError):
    status_code = 409

    def __init__(self, message: str = "Attendance already recorded for today", existing_record: Optional[dict] = None):
        super().__init__(message, existing_record=existing_record)
        self.existing_record = existing_record


class InvalidScanTime(AttendanceError):
    status_code = 422


# Dispatcher
class ChannelSendFailed(AttendanceError):
    status_code = 502

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel.upper()} sending failed: {message}", channel=channel)
        self.channel = channel


class NoDeliverableChannel(AttendanceError):
    status_code = 422

    def __init__(self, message: str = "No deliverable channel for this contact", notification_id: Optional[int] = None):
        super().__init__(message, notification_id=notification_id)
        self.notification_id = notification_id


# Cross-cutting
class SubjectNotFound(AttendanceError):
    status_code = 404


class SubjectInactive(AttendanceError):
    status_code = 403


class RecordNotFound(AttendanceError):
    status_code = 404


class SweepAlreadyRunning(AttendanceError):
    status_code = 409
