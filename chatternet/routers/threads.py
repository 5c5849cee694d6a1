from typing import Optional

from fastapi import APIRouter, Depends, Query

from chatternet.schemas.chat import HistoryResponse, ResolveThreadRequest, ResolveThreadResponse, ThreadListResponse
from chatternet.services.chat_service import ChatService
from chatternet.services.thread_service import ThreadService
from chatternet.utils.dependencies import get_chat_service, get_current_user_id, get_thread_service


router = APIRouter(prefix="/threads", tags=["chat"])


@router.post("/resolve", response_model=ResolveThreadResponse)
async def resolve_thread(body: ResolveThreadRequest, current_user_id: str = Depends(get_current_user_id), service: ThreadService = Depends(get_thread_service)):
    thread_id = await service.resolve_thread(current_user_id, body.peer_id)
    return ResolveThreadResponse(thread_id=thread_id)


@router.get("", response_model=ThreadListResponse)
async def list_threads(limit: int = Query(50, ge=1, le=200), current_user_id: str = Depends(get_current_user_id), service: ThreadService = Depends(get_thread_service)):
    return ThreadListResponse(items=await service.list_threads(current_user_id, limit=limit))


@router.get("/{thread_id}/messages", response_model=HistoryResponse)
async def thread_history(thread_id: str, limit: int = Query(50, ge=1, le=200), cursor: Optional[str] = None, current_user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    return await service.get_history(thread_id, current_user_id, limit=limit, cursor=cursor)
