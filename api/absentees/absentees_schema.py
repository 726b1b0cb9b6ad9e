# api/absentees/absentees_schema.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from api.subjects.subjects_schema import SubjectOut


class AbsentSubjectsOut(BaseModel):
    date: str
    count: int
    subjects: List[SubjectOut]


class SubjectSweepResult(BaseModel):
    subject_id: int
    subject_code: str
    name: str
    record_id: Optional[int] = None
    notification_id: Optional[int] = None
    skipped: bool = False
    email_sent: bool = False
    sms_sent: bool = False
    errors: List[str] = Field(default_factory=list)


class SweepSummaryOut(BaseModel):
    date: str
    trigger: str
    started_at: str
    total_active: int
    total: int
    records_created: int
    skipped: int
    emails_sent: int
    sms_sent: int
    error_count: int
    retried: Dict[str, int]
    results: List[SubjectSweepResult]


class ScheduleInfoOut(BaseModel):
    cutoff_time: str
    cron_expression: str
    timezone: str
    description: str
    active_jobs: List[str]
    next_run_time: Optional[str] = None
    state: str
    last_summary: Optional[Dict[str, Any]] = None


class SendAbsenceNotificationIn(BaseModel):
    subject_ids: List[int] = Field(..., min_length=1)
    custom_message: Optional[str] = Field(default=None, max_length=1600)


class SendAbsenceNotificationOut(BaseModel):
    total: int
    successful: int
    results: List[SubjectSweepResult]
