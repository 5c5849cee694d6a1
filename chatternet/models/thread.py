from typing import List, Optional, TypedDict


class ThreadDocument(TypedDict, total=False):
    _id: str
    # canonical "a|b" key of the sorted participant ids, unique
    pair_key: str
    participants: List[str]
    created_at_ms: int
    # allocation state for the next message
    last_seq: int
    last_message_at_ms: int
    last_message_preview: Optional[str]
