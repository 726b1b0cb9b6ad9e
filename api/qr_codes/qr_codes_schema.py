# api/qr_codes/qr_codes_schema.py
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional
from datetime import datetime
import enum

from api.subjects.subjects_model import SubjectKind


class PayloadShape(str, enum.Enum):
    """How a scanned payload was issued. Resolved once, in the codec."""
    legacy       = "legacy"        # scanner app: studentId/employeeId + type=attendance
    signed       = "signed"        # admin generator: carries a digest
    bare         = "bare"          # printed code: id + core fields, no digest
    unrecognized = "unrecognized"


class IdentitySnapshot(BaseModel):
    subject_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    group: str = Field(..., min_length=1)
    subgroup: str = Field(..., min_length=1)
    kind: SubjectKind = SubjectKind.student
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class DecodedIdentity(BaseModel):
    identity: IdentitySnapshot
    shape: PayloadShape
    signed: bool
    version: Optional[str] = None


class EncodeOptions(BaseModel):
    box_size: int = Field(default=10, ge=1, le=50)
    border: int = Field(default=1, ge=0, le=20)
    error_correction: Literal["L", "M", "Q", "H"] = "M"
    fill_color: str = "black"
    back_color: str = "white"


class EncodedQr(BaseModel):
    payload: str
    digest: str
    image_png: bytes


# ─── API payloads ──────────────────────────────────────────────────────────────

class QrDecodeIn(BaseModel):
    qr_code: str


class QrDecodeOut(BaseModel):
    valid: bool
    shape: Optional[PayloadShape] = None
    signed: bool = False
    identity: Optional[IdentitySnapshot] = None
    error: Optional[dict] = None


class QrFormatOut(BaseModel):
    is_valid: bool
    version: Optional[str] = None
    type: Optional[str] = None
    error: Optional[str] = None


class QrEncodeIn(BaseModel):
    subject_id: int
    printable: bool = False
    options: Optional[EncodeOptions] = None


class QrEncodeOut(BaseModel):
    subject_id: int
    payload: str
    digest: str
    image_base64: str
    data_url: str


class QrBatchIn(BaseModel):
    subject_ids: List[int] = Field(..., min_length=1)
    options: Optional[EncodeOptions] = None


class QrBatchItem(BaseModel):
    subject_id: int
    success: bool
    payload: Optional[str] = None
    image_base64: Optional[str] = None
    error: Optional[str] = None
