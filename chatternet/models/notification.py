from typing import Dict, Literal, Optional, TypedDict


NotificationKind = Literal["dm", "follows", "comments", "likes"]


class NotificationPreferenceDocument(TypedDict, total=False):
    _id: str  # user id
    channels: Dict[str, bool]
    kinds: Dict[str, bool]
    dnd: Dict[str, object]
    timezone: str


class NotificationDocument(TypedDict, total=False):
    _id: str
    user_id: str
    kind: str
    text: str
    time_ms: int
    sound: bool
    email: bool
    thread_id: Optional[str]
    message_id: Optional[int]
    sender_id: Optional[str]
    read: bool
