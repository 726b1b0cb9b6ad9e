# api/notifications/notification_routes.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from middlewares.auth_middleware import auth_middleware, require_admin
from api.notifications.notifications_schema import (
    BulkSendIn,
    BulkSendOut,
    NotificationRead,
    RetrySummaryOut,
    SendNotificationIn,
)
from api.notifications.notifications_controller import NotificationsController
from api.notifications.notifications_service import NotificationDispatcher
from utils.deps import get_dispatcher

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post(
    "/send",
    response_model=NotificationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Send a notification to one subject's contact",
)
async def send_notification(
    payload: SendNotificationIn,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: dict = Depends(auth_middleware),
):
    return await NotificationsController.send(payload, db, dispatcher)


@router.post(
    "/bulk-send",
    response_model=BulkSendOut,
    summary="Send the same message to several subjects' contacts",
)
async def bulk_send_notifications(
    payload: BulkSendIn,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: dict = Depends(auth_middleware),
):
    return await NotificationsController.bulk_send(payload, db, dispatcher)


@router.post(
    "/retry-pending",
    response_model=RetrySummaryOut,
    summary="Re-attempt pending and partially delivered notifications",
)
async def retry_pending_notifications(
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: dict = Depends(require_admin),
):
    return await NotificationsController.retry_pending(db, dispatcher)


@router.get(
    "/provider-status",
    summary="Which notification providers are configured",
)
def provider_status(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: dict = Depends(auth_middleware),
):
    return dispatcher.provider_status()


@router.get(
    "/{notification_id}",
    response_model=NotificationRead,
    summary="Fetch one notification with its per-channel state",
)
async def get_notification(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(auth_middleware),
):
    return await NotificationsController.get_notification(notification_id, db)
