# api/subjects/subjects_schema.py
from pydantic import BaseModel, ConfigDict
from typing import Optional

from api.subjects.subjects_model import SubjectKind


class SubjectOut(BaseModel):
    id: int
    subject_code: str
    kind: SubjectKind
    display_name: str
    group_name: str
    subgroup_name: str
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
