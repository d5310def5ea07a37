from pydantic import BaseModel
from typing import Optional

class RelationshipOut(BaseModel):
    ok: bool = True
    following: Optional[bool] = None
    followed_by: Optional[bool] = None
    blocked: Optional[bool] = None

class CanMessageOut(BaseModel):
    can_message: bool
    reason: Optional[str] = None
    message: Optional[str] = None
