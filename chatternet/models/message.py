from typing import TypedDict


class MessageDocument(TypedDict, total=False):
    _id: str
    thread_id: str
    # per-thread sequence, exposed to clients as the message id
    seq: int
    sender_id: str
    text: str
    created_at_ms: int
