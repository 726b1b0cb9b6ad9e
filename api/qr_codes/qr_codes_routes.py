# api/qr_codes/qr_codes_routes.py

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from middlewares.auth_middleware import auth_middleware, require_admin
from api.qr_codes.qr_codes_service import QRCodec, get_qr_codec
from api.qr_codes.qr_codes_schema import (
    QrBatchIn,
    QrBatchItem,
    QrDecodeIn,
    QrDecodeOut,
    QrEncodeIn,
    QrEncodeOut,
    QrFormatOut,
)
from api.qr_codes.qr_codes_controller import QrCodesController

router = APIRouter(prefix="/qr_codes", tags=["QR Codes"])


@router.post(
    "/encode",
    response_model=QrEncodeOut,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a signed QR code for a subject",
)
async def encode_qr(
    payload: QrEncodeIn,
    db: AsyncSession = Depends(get_db),
    codec: QRCodec = Depends(get_qr_codec),
    current_user: dict = Depends(require_admin),
) -> QrEncodeOut:
    return await QrCodesController.encode(payload, db, codec)


@router.post(
    "/decode",
    response_model=QrDecodeOut,
    summary="Decode and authenticate a scanned payload without recording it",
)
def decode_qr(
    payload: QrDecodeIn,
    codec: QRCodec = Depends(get_qr_codec),
    current_user: dict = Depends(auth_middleware),
) -> QrDecodeOut:
    return QrCodesController.decode(payload, codec)


@router.post(
    "/validate",
    response_model=QrFormatOut,
    summary="Structural check of a payload (no signature verification)",
)
def validate_qr(
    payload: QrDecodeIn,
    codec: QRCodec = Depends(get_qr_codec),
    current_user: dict = Depends(auth_middleware),
) -> QrFormatOut:
    return QrCodesController.validate_format(payload, codec)


@router.post(
    "/batch",
    response_model=List[QrBatchItem],
    summary="Issue QR codes for several subjects",
)
async def batch_encode_qr(
    payload: QrBatchIn,
    db: AsyncSession = Depends(get_db),
    codec: QRCodec = Depends(get_qr_codec),
    current_user: dict = Depends(require_admin),
) -> List[QrBatchItem]:
    return await QrCodesController.batch(payload, db, codec)
