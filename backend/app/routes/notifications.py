"""Notification routes."""

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from ..auth import CurrentUser
from ..database import Database
from ..logging_config import get_logger
from ..marketplace import Notification, NotificationService
from ..rate_limit import limiter

logger = get_logger("gigmarket.notifications")
router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationListResponse(BaseModel):
    notifications: list[Notification]
    unread: int


@router.get("", response_model=NotificationListResponse)
@limiter.limit("60/minute")
async def list_notifications(
    request: Request,
    auth: CurrentUser,
    db: Database,
    unread: bool = Query(False, description="Only unread notifications"),
    limit: int = Query(50, ge=1, le=200),
):
    """List my notifications, newest first."""
    logger.info(f"GET /notifications | user={auth.user_id} | unread={unread}")

    notifications = await NotificationService.list_for_user(db, auth, unread_only=unread, limit=limit)
    return NotificationListResponse(
        notifications=notifications,
        unread=sum(1 for n in notifications if not n.read),
    )


@router.post("/{notification_id}/read", response_model=Notification)
@limiter.limit("60/minute")
async def mark_notification_read(
    request: Request,
    notification_id: str,
    auth: CurrentUser,
    db: Database,
):
    logger.info(f"POST /notifications/{notification_id}/read | user={auth.user_id}")

    return await NotificationService.mark_read(db, auth, notification_id)
