from fastapi import APIRouter, Depends, status

from chatternet.schemas.chat import SendMessageRequest, SendMessageResponse
from chatternet.services.chat_service import ChatService
from chatternet.utils.clock import from_ms
from chatternet.utils.dependencies import get_chat_service, get_current_user_id


router = APIRouter(prefix="/messages", tags=["chat"])


@router.post("", response_model=SendMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(body: SendMessageRequest, current_user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    if body.thread_id:
        saved = await service.append(body.thread_id, current_user_id, body.text)
    else:
        saved = await service.send_to_peer(current_user_id, body.peer_id, body.text)
    return SendMessageResponse(
        message_id=saved["seq"],
        thread_id=saved["thread_id"],
        created_at=from_ms(saved["created_at_ms"]),
        client_message_id=body.client_message_id,
    )
