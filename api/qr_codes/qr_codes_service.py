# api/qr_codes/qr_codes_service.py
"""
QR payload codec.

Payloads come from two independent issuers: the admin-side generator (signed
"standard" codes) and the scanning client (unsigned "legacy" codes). Both, and
bare printed codes without a digest, are accepted and mapped to the same
IdentitySnapshot. Shape detection lives here and nowhere else.
"""
import hashlib
import hmac
import io
import json
import logging
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import qrcode
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q

from api.qr_codes.qr_codes_schema import (
    DecodedIdentity,
    EncodedQr,
    EncodeOptions,
    IdentitySnapshot,
    PayloadShape,
    QrFormatOut,
)
from api.subjects.subjects_model import Subject, SubjectKind
from config.settings import get_settings
from utils.exceptions import Expired, IntegrityCheckFailed, MalformedPayload, MissingFields
from utils.time_utils import parse_iso_datetime, utc_now

logger = logging.getLogger(__name__)

DIGEST_FIELD = "hash"
DIGEST_LENGTH = 16
PAYLOAD_VERSION = "1.0"
LEGACY_TYPE = "attendance"

ERROR_CORRECTION_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}

PRINTABLE_OPTIONS = EncodeOptions(box_size=6, border=2, error_correction="H")


def compute_digest(data: Dict[str, Any], secret: str) -> str:
    """Keyed digest over every field except the digest itself, in the order the issuer wrote them."""
    unsigned = {k: v for k, v in data.items() if k != DIGEST_FIELD}
    serialized = json.dumps(unsigned, separators=(",", ":"), ensure_ascii=False, default=str)
    return hmac.new(secret.encode("utf-8"), serialized.encode("utf-8"), hashlib.sha256).hexdigest()[:DIGEST_LENGTH]


def parse_payload(raw: Any) -> Dict[str, Any]:
    if not raw or not isinstance(raw, str):
        raise MalformedPayload("QR code data is empty or invalid")
    try:
        data = json.loads(raw)
    except ValueError:
        raise MalformedPayload("QR code contains invalid JSON data")
    if not isinstance(data, dict):
        raise MalformedPayload("QR code payload must be a JSON object")
    return data


def _is_legacy(data: Dict[str, Any]) -> bool:
    return data.get("type") == LEGACY_TYPE and bool(data.get("studentId") or data.get("employeeId"))


def detect_shape(data: Dict[str, Any]) -> PayloadShape:
    if DIGEST_FIELD in data:
        return PayloadShape.signed
    if _is_legacy(data):
        return PayloadShape.legacy
    if data.get("id"):
        return PayloadShape.bare
    return PayloadShape.unrecognized


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _resolve_fields(data: Dict[str, Any]) -> Tuple[Dict[str, Optional[str]], SubjectKind]:
    """Map either issuer's field names onto id/name/group/subgroup."""
    if _is_legacy(data):
        if data.get("employeeId"):
            kind = SubjectKind.employee
            fields = {
                "id": _text(data.get("employeeId")),
                "group": _text(data.get("department")),
                "subgroup": _text(data.get("position")),
            }
        else:
            kind = SubjectKind.student
            fields = {
                "id": _text(data.get("studentId")),
                "group": _text(data.get("class")),
                "subgroup": _text(data.get("section")),
            }
    else:
        is_employee = "department" in data or "position" in data
        kind = SubjectKind.employee if is_employee else SubjectKind.student
        fields = {
            "id": _text(data.get("id")),
            "group": _text(data.get("department") or data.get("class")),
            "subgroup": _text(data.get("position") or data.get("section")),
        }
    fields["name"] = _text(data.get("name"))
    return fields, kind


def _optional_timestamp(data: Dict[str, Any], *keys: str, strict: bool) -> Optional[datetime]:
    for key in keys:
        value = data.get(key)
        if value in (None, ""):
            continue
        try:
            return parse_iso_datetime(str(value))
        except ValueError:
            if strict:
                raise MalformedPayload(f"QR code field '{key}' is not a valid timestamp")
            return None
    return None


class QRCodec:
    def __init__(
        self,
        secret: str,
        organization: str = "",
        validity_days: int = 365,
        supported_versions: Sequence[str] = (PAYLOAD_VERSION,),
        default_options: Optional[EncodeOptions] = None,
    ):
        self.secret = secret
        self.organization = organization
        self.validity_days = validity_days
        self.supported_versions = list(supported_versions)
        self.default_options = default_options or EncodeOptions()

    @classmethod
    def from_settings(cls, settings) -> "QRCodec":
        return cls(
            secret=settings.QR_SECRET,
            organization=settings.ORGANIZATION_NAME,
            validity_days=settings.QR_VALIDITY_DAYS,
            supported_versions=settings.qr_supported_versions_list,
            default_options=EncodeOptions(
                box_size=settings.QR_DEFAULT_BOX_SIZE,
                border=settings.QR_DEFAULT_BORDER,
                error_correction=settings.QR_DEFAULT_ERROR_CORRECTION,
            ),
        )

    # ─── decoding ────────────────────────────────────────────────────────────

    def verify_integrity(self, data: Dict[str, Any], shape: PayloadShape) -> None:
        if shape is PayloadShape.signed:
            received = data.get(DIGEST_FIELD)
            expected = compute_digest(data, self.secret)
            if not isinstance(received, str) or not hmac.compare_digest(received, expected):
                logger.warning("QR code hash verification failed (received %s...)", str(received)[:8])
                raise IntegrityCheckFailed("QR code integrity check failed")
        elif shape is PayloadShape.unrecognized:
            logger.warning("QR code missing security hash and not a recognized format")
            raise IntegrityCheckFailed("QR code integrity check failed")

    def decode(self, raw: Any, now: Optional[datetime] = None) -> DecodedIdentity:
        data = parse_payload(raw)
        shape = detect_shape(data)
        logger.debug("Parsing QR code: shape=%s id=%s", shape.value,
                     data.get("id") or data.get("studentId") or data.get("employeeId"))

        self.verify_integrity(data, shape)

        expires_at = _optional_timestamp(data, "expiresAt", "expires", strict=True)
        if expires_at is not None and expires_at < (now or utc_now()):
            raise Expired("QR code has expired", expired_at=expires_at.isoformat())

        fields, kind = _resolve_fields(data)
        missing = [name for name in ("id", "name", "group", "subgroup") if not fields[name]]
        if missing:
            raise MissingFields(missing)

        identity = IdentitySnapshot(
            subject_id=fields["id"],
            name=fields["name"],
            group=fields["group"],
            subgroup=fields["subgroup"],
            kind=kind,
            issued_at=_optional_timestamp(data, "issuedAt", "issued", strict=False),
            expires_at=expires_at,
        )
        logger.info("QR code accepted: shape=%s subject=%s", shape.value, identity.subject_id)
        return DecodedIdentity(
            identity=identity,
            shape=shape,
            signed=shape is PayloadShape.signed,
            version=_text(data.get("version")),
        )

    def validate_format(self, raw: Any) -> QrFormatOut:
        """Structural check only; no authentication."""
        try:
            data = parse_payload(raw)
        except MalformedPayload as e:
            return QrFormatOut(is_valid=False, error=e.message)

        if not (data.get("id") or data.get("studentId") or data.get("employeeId")):
            return QrFormatOut(is_valid=False, error="QR code missing subject ID")

        version = _text(data.get("version"))
        if version and version not in self.supported_versions:
            return QrFormatOut(is_valid=False, error="Unsupported QR code version")

        return QrFormatOut(
            is_valid=True,
            version=version or PAYLOAD_VERSION,
            type=_text(data.get("type")) or detect_shape(data).value,
        )

    # ─── encoding ────────────────────────────────────────────────────────────

    def build_payload(self, snapshot: IdentitySnapshot, issued_at: Optional[datetime] = None) -> Dict[str, Any]:
        issued_at = issued_at or utc_now()
        expires_at = snapshot.expires_at or issued_at + timedelta(days=self.validity_days)
        if snapshot.kind is SubjectKind.employee:
            group_key, subgroup_key = "department", "position"
        else:
            group_key, subgroup_key = "class", "section"

        data: Dict[str, Any] = {
            "id": snapshot.subject_id,
            "name": snapshot.name,
            group_key: snapshot.group,
            subgroup_key: snapshot.subgroup,
            "organization": self.organization,
            "issuedAt": issued_at.isoformat(),
            "expiresAt": expires_at.isoformat(),
            "version": PAYLOAD_VERSION,
        }
        data[DIGEST_FIELD] = compute_digest(data, self.secret)
        return data

    def render_png(self, payload: str, options: Optional[EncodeOptions] = None) -> bytes:
        options = options or self.default_options
        qr = qrcode.QRCode(
            version=None,
            error_correction=ERROR_CORRECTION_LEVELS[options.error_correction],
            box_size=options.box_size,
            border=options.border,
        )
        qr.add_data(payload)
        qr.make(fit=True)
        img = qr.make_image(fill_color=options.fill_color, back_color=options.back_color)

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()

    def encode(
        self,
        snapshot: IdentitySnapshot,
        options: Optional[EncodeOptions] = None,
        issued_at: Optional[datetime] = None,
    ) -> EncodedQr:
        data = self.build_payload(snapshot, issued_at)
        payload = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        return EncodedQr(payload=payload, digest=data[DIGEST_FIELD], image_png=self.render_png(payload, options))

    def encode_printable(self, snapshot: IdentitySnapshot, issued_at: Optional[datetime] = None) -> EncodedQr:
        return self.encode(snapshot, PRINTABLE_OPTIONS, issued_at)

    def encode_for_subjects(
        self,
        subjects: Iterable[Subject],
        options: Optional[EncodeOptions] = None,
        issued_at: Optional[datetime] = None,
    ) -> List[Tuple[Subject, Optional[EncodedQr], Optional[str]]]:
        """Issue codes for many subjects; one failure does not stop the rest."""
        results = []
        for subject in subjects:
            try:
                encoded = self.encode(snapshot_for_subject(subject), options, issued_at)
                results.append((subject, encoded, None))
            except Exception as e:
                logger.error("QR code generation failed for subject %s: %s", subject.id, e)
                results.append((subject, None, str(e)))
        return results


def snapshot_for_subject(subject: Subject) -> IdentitySnapshot:
    return IdentitySnapshot(
        subject_id=subject.subject_code,
        name=subject.display_name,
        group=subject.group_name,
        subgroup=subject.subgroup_name,
        kind=subject.kind,
    )


@lru_cache()
def get_qr_codec() -> QRCodec:
    return QRCodec.from_settings(get_settings())
