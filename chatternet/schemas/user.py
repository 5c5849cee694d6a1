from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserPublic(BaseModel):

    id: str
    handle: Optional[str] = None
    display_name: Optional[str] = None
    avatar_ref: Optional[str] = None


class PresenceOut(BaseModel):

    user_id: str
    online: bool
    last_seen_at: Optional[datetime] = None


class UserWithPresence(PresenceOut):

    display_name: Optional[str] = None
    avatar_ref: Optional[str] = None
