"""
Notification routes
"""
from typing import List

from fastapi import APIRouter, Depends

from ...application.notifications import NotificationCenter
from ...domain.models import UserProfile
from ...errors import NotFoundError
from ...schemas import MessageResponse, NotificationResponse
from ..dependencies import get_current_user, get_notifications


router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    user: UserProfile = Depends(get_current_user),
    notifications: NotificationCenter = Depends(get_notifications),
):
    """Pending notifications for the caller"""
    return [NotificationResponse.model_validate(n) for n in notifications.list(user.id)]


@router.delete("/{notification_id}", response_model=MessageResponse)
async def dismiss_notification(
    notification_id: str,
    user: UserProfile = Depends(get_current_user),
    notifications: NotificationCenter = Depends(get_notifications),
):
    if not notifications.remove(user.id, notification_id):
        raise NotFoundError(f"Notification {notification_id} not found")
    return MessageResponse(message="Notification dismissed")
