from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .users import UserOut

class MessageIn(BaseModel):
    body: str = Field(..., description='Message text; trimmed before validation')

class MessageOut(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    body: str
    created_at: datetime
    is_read: bool

    class Config:
        from_attributes = True

class ConversationOut(BaseModel):
    id: int
    participant_low: int
    participant_high: int
    last_activity_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True

class InboxEntryOut(BaseModel):
    conversation: ConversationOut
    other_user: UserOut
    last_message: Optional[MessageOut] = None
    unread_count: int

    class Config:
        from_attributes = True

class InboxOut(BaseModel):
    inbox: List[InboxEntryOut]
    page: int
    has_more: bool

class ConversationViewOut(BaseModel):
    conversation: ConversationOut
    other_user: UserOut
    messages: List[MessageOut]
    page: int
    has_more: bool
    can_reply: bool
    cannot_reply_reason: Optional[str] = None
    max_body_length: int

class PollMessageOut(BaseModel):
    message_id: int
    sender_id: int
    body: str
    created_at: datetime
    is_mine: bool

class PollOut(BaseModel):
    success: bool = True
    messages: List[PollMessageOut]
    can_reply: bool
    cannot_reply_reason: Optional[str] = None
    last_timestamp: datetime
    last_message_id: Optional[int] = None

class UnreadCountOut(BaseModel):
    unread: int

class ActionOkOut(BaseModel):
    ok: bool = True
    message: Optional[str] = None
