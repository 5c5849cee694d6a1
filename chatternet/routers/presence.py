from typing import List

from fastapi import APIRouter, Depends

from chatternet.schemas.user import PresenceOut, UserWithPresence
from chatternet.services.presence_service import PresenceService
from chatternet.utils.dependencies import get_current_user_id, get_presence_service


router = APIRouter(prefix="/presence", tags=["presence"])


@router.post("/heartbeat")
async def heartbeat(current_user_id: str = Depends(get_current_user_id), service: PresenceService = Depends(get_presence_service)):
    await service.heartbeat(current_user_id)
    return {"ok": True}


@router.get("", response_model=List[UserWithPresence])
async def list_presence(current_user_id: str = Depends(get_current_user_id), service: PresenceService = Depends(get_presence_service)):
    return await service.list_with_presence()


@router.get("/{user_id}", response_model=PresenceOut)
async def presence(user_id: str, current_user_id: str = Depends(get_current_user_id), service: PresenceService = Depends(get_presence_service)):
    """Online status of one user, computed from their last heartbeat."""
    return await service.presence_of(user_id)
