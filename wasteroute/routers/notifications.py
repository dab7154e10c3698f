# wasteroute/routers/notifications.py
from typing import List

from fastapi import APIRouter, Depends

from wasteroute.core.errors import NotFoundError
from wasteroute.core.security import get_current_user
from wasteroute.deps import get_notifier
from wasteroute.models.notification import NotificationOut, notification_out

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationOut])
async def list_notifications(user=Depends(get_current_user), notifier=Depends(get_notifier)):
    return [notification_out(n) for n in await notifier.list_for(user["_id"])]


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(notification_id: str, user=Depends(get_current_user), notifier=Depends(get_notifier)):
    doc = await notifier.mark_read(notification_id, user["_id"])
    if not doc:
        raise NotFoundError("Notification not found")
    return notification_out(doc)
