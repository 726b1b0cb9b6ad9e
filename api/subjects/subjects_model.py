# api/subjects/subjects_model.py
from sqlalchemy import Column, Integer, String, Boolean, Enum, DateTime
from sqlalchemy.sql import func
from config.database import Base
import enum


class SubjectKind(enum.Enum):
    student  = "student"
    employee = "employee"


class Subject(Base):
    """
    Read-only view of the people directory. Rows are created and edited by the
    external records service; this backend only reads them.
    """
    __tablename__ = "subjects"

    id            = Column(Integer, primary_key=True, index=True)
    subject_code  = Column(String(50), nullable=False, unique=True, index=True)
    kind          = Column(Enum(SubjectKind, name="subject_kind"), nullable=False, default=SubjectKind.student)
    display_name  = Column(String(150), nullable=False)
    group_name    = Column(String(100), nullable=False)   # class / department
    subgroup_name = Column(String(100), nullable=False)   # section / position
    contact_name  = Column(String(150), nullable=True)
    contact_phone = Column(String(30), nullable=True)
    contact_email = Column(String(255), nullable=True)
    is_active     = Column(Boolean, nullable=False, default=True, index=True)
    created_at    = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at    = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
