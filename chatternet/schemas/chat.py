from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, model_validator


class ResolveThreadRequest(BaseModel):

    peer_id: str


class ResolveThreadResponse(BaseModel):

    thread_id: str


class ThreadOut(BaseModel):

    id: str
    participants: List[str]
    peer_id: Optional[str] = None
    created_at: datetime
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None


class ThreadListResponse(BaseModel):

    items: List[ThreadOut]


class SendMessageRequest(BaseModel):

    thread_id: Optional[str] = None
    peer_id: Optional[str] = None
    text: str
    client_message_id: Optional[str] = None

    @model_validator(mode="after")
    def _one_target(self) -> "SendMessageRequest":
        if not self.thread_id and not self.peer_id:
            raise ValueError("thread_id or peer_id is required")
        return self


class SendMessageResponse(BaseModel):

    message_id: int
    thread_id: str
    created_at: datetime
    client_message_id: Optional[str] = None


class MessageOut(BaseModel):

    id: int
    thread_id: str
    sender_id: str
    text: str
    created_at: datetime


class HistoryResponse(BaseModel):

    messages: List[MessageOut]
    next_cursor: Optional[str] = None
    has_more: bool = False
