"""
Relationship gate: may user A message user B right now?

Rules, first failure wins:

1. A and B are the same user                          -> SELF
2. a block exists in either direction                 -> BLOCKED
3. B is missing, disabled or pending approval         -> UNAVAILABLE
4. no conversation exists yet and they are not
   mutual followers                                   -> NOT_MUTUAL_FOLLOW

An existing conversation survives an unfollow; it never survives a block.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.conversations import Conversation
from ..models.users import User
from .. import crud
from .errors import ErrorCode, describe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: Optional[ErrorCode] = None

    @property
    def message(self) -> Optional[str]:
        return describe(self.reason)


ALLOWED = GateDecision(True)


async def conversation_exists(session: AsyncSession, user_a: int, user_b: int) -> bool:
    res = await session.execute(select(Conversation.id).where(Conversation.between(user_a, user_b)))
    return res.scalar() is not None


async def can_message(session: AsyncSession, sender_id: int, recipient_id: int) -> GateDecision:
    if sender_id == recipient_id:
        return GateDecision(False, ErrorCode.SELF)

    if await crud.has_block_between(session, sender_id, recipient_id):
        return GateDecision(False, ErrorCode.BLOCKED)

    recipient = await session.get(User, recipient_id)
    if recipient is None or not recipient.can_receive_messages:
        return GateDecision(False, ErrorCode.UNAVAILABLE)

    if not await conversation_exists(session, sender_id, recipient_id):
        if not await crud.are_mutual_follows(session, sender_id, recipient_id):
            return GateDecision(False, ErrorCode.NOT_MUTUAL_FOLLOW)

    return ALLOWED
