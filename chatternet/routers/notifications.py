from typing import List

from fastapi import APIRouter, Depends, Query

from chatternet.schemas.notification import NotificationOut, NotificationPreferences
from chatternet.services.notification_service import NotificationService
from chatternet.utils.dependencies import get_current_user_id, get_notification_service


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(current_user_id: str = Depends(get_current_user_id), service: NotificationService = Depends(get_notification_service)):
    return await service.get_preferences(current_user_id)


@router.put("/preferences", response_model=NotificationPreferences)
async def put_preferences(body: NotificationPreferences, current_user_id: str = Depends(get_current_user_id), service: NotificationService = Depends(get_notification_service)):
    return await service.put_preferences(current_user_id, body)


@router.get("", response_model=List[NotificationOut])
async def list_notifications(limit: int = Query(50, ge=1, le=200), unread_only: bool = False, current_user_id: str = Depends(get_current_user_id), service: NotificationService = Depends(get_notification_service)):
    return await service.list_notifications(current_user_id, limit=limit, unread_only=unread_only)


@router.post("/read")
async def mark_read(current_user_id: str = Depends(get_current_user_id), service: NotificationService = Depends(get_notification_service)):
    return {"updated": await service.mark_read(current_user_id)}
