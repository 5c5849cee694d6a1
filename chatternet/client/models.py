from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    # demo-mode messages that never touch the server
    LOCAL = "local"


class MirrorMessage(BaseModel):

    client_id: str
    id: Optional[int] = None
    thread_id: Optional[str] = None
    sender_id: str
    text: str
    created_at: datetime
    status: DeliveryStatus = DeliveryStatus.SENT
    error: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.status == DeliveryStatus.SENT and self.id is not None


class LocalThreadMirror(BaseModel):

    with_user_id: str
    thread_id: Optional[str] = None
    messages: List[MirrorMessage] = Field(default_factory=list)
    unread_count: int = 0
    updated_at: datetime
    # server history position already mirrored
    cursor: Optional[str] = None


class MirrorSnapshot(BaseModel):

    user_id: str
    origin: str
    revision: str
    written_at: datetime
    threads: Dict[str, LocalThreadMirror] = Field(default_factory=dict)
