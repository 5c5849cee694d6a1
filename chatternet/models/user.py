from typing import Optional, TypedDict


class UserDocument(TypedDict, total=False):

    _id: str
    handle: str
    display_name: Optional[str]
    avatar_ref: Optional[str]


class PresenceDocument(TypedDict, total=False):
    _id: str  # user id
    last_seen_ms: int
