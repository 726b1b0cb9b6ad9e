# api/qr_codes/qr_codes_controller.py

import base64
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from api.qr_codes.qr_codes_service import QRCodec, snapshot_for_subject
from api.qr_codes.qr_codes_schema import (
    EncodedQr,
    QrBatchIn,
    QrBatchItem,
    QrDecodeIn,
    QrDecodeOut,
    QrEncodeIn,
    QrEncodeOut,
    QrFormatOut,
)
from api.subjects.subjects_service import SubjectService
from utils.exceptions import QrDecodeError, SubjectInactive, SubjectNotFound


def _image_base64(encoded: EncodedQr) -> str:
    return base64.b64encode(encoded.image_png).decode("utf-8")


class QrCodesController:
    @staticmethod
    async def encode(payload: QrEncodeIn, db: AsyncSession, codec: QRCodec) -> QrEncodeOut:
        subject = await SubjectService(db).find_subject_by_id(payload.subject_id)
        if subject is None:
            raise SubjectNotFound(f"Subject {payload.subject_id} not found")
        if not subject.is_active:
            raise SubjectInactive(f"Subject {subject.subject_code} is not active")

        snapshot = snapshot_for_subject(subject)
        if payload.printable:
            encoded = codec.encode_printable(snapshot)
        else:
            encoded = codec.encode(snapshot, payload.options)

        image_b64 = _image_base64(encoded)
        return QrEncodeOut(
            subject_id=subject.id,
            payload=encoded.payload,
            digest=encoded.digest,
            image_base64=image_b64,
            data_url=f"data:image/png;base64,{image_b64}",
        )

    @staticmethod
    def decode(payload: QrDecodeIn, codec: QRCodec) -> QrDecodeOut:
        try:
            decoded = codec.decode(payload.qr_code)
        except QrDecodeError as e:
            return QrDecodeOut(valid=False, error=e.to_dict())
        return QrDecodeOut(
            valid=True,
            shape=decoded.shape,
            signed=decoded.signed,
            identity=decoded.identity,
        )

    @staticmethod
    def validate_format(payload: QrDecodeIn, codec: QRCodec) -> QrFormatOut:
        return codec.validate_format(payload.qr_code)

    @staticmethod
    async def batch(payload: QrBatchIn, db: AsyncSession, codec: QRCodec) -> List[QrBatchItem]:
        subjects = await SubjectService(db).find_subjects_by_ids(payload.subject_ids)
        found = {s.id for s in subjects}

        items = [
            QrBatchItem(subject_id=sid, success=False, error="Subject not found or inactive")
            for sid in payload.subject_ids
            if sid not in found
        ]
        for subject, encoded, error in codec.encode_for_subjects(subjects, payload.options):
            if encoded is None:
                items.append(QrBatchItem(subject_id=subject.id, success=False, error=error))
            else:
                items.append(QrBatchItem(
                    subject_id=subject.id,
                    success=True,
                    payload=encoded.payload,
                    image_base64=_image_base64(encoded),
                ))

        order = {sid: i for i, sid in enumerate(payload.subject_ids)}
        return sorted(items, key=lambda item: order.get(item.subject_id, len(order)))
