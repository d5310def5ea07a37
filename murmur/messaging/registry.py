"""
Conversation registry.

Owns the one-row-per-pair identity of a 1:1 conversation. The pair is stored
as (participant_low, participant_high) under a unique constraint, so two
requests racing to open the same conversation end up sharing one row: the
loser hits the constraint, rolls back and reads the winner's row.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ..core import CONVERSATIONS_CREATED
from ..models.conversations import Conversation
from ..models.messages import Message
from ..models.users import User
from ..utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class InboxEntry:
    conversation: Conversation
    other_user: User
    last_message: Optional[Message]
    unread_count: int


async def find_between(session: AsyncSession, user_a: int, user_b: int) -> Optional[Conversation]:
    res = await session.execute(select(Conversation).where(Conversation.between(user_a, user_b)))
    return res.scalars().first()


async def get_or_create(session: AsyncSession, user_a: int, user_b: int) -> Conversation:
    """Return the conversation between two users, creating it if needed.

    Callers must have consulted the relationship gate before creating a new
    conversation; this function does not.
    """
    if user_a == user_b:
        raise ValueError('a conversation needs two distinct participants')

    conversation = await find_between(session, user_a, user_b)
    if conversation is not None:
        return conversation

    low, high = Conversation.canonical_pair(user_a, user_b)
    now = utcnow()
    conversation = Conversation(participant_low=low, participant_high=high, created_at=now, last_activity_at=now)
    session.add(conversation)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        existing = await find_between(session, user_a, user_b)
        if existing is None:
            raise
        logger.debug({'msg': 'conversation_create_race', 'low': low, 'high': high})
        return existing

    CONVERSATIONS_CREATED.inc()
    logger.info({'msg': 'conversation_created', 'conversation_id': conversation.id, 'low': low, 'high': high})
    return conversation


async def get_by_id(session: AsyncSession, conversation_id: int, user_id: int) -> Optional[Conversation]:
    """The conversation, or None when it does not exist or ``user_id`` is not in it."""
    conversation = await session.get(Conversation, conversation_id)
    if conversation is None or not conversation.has_participant(user_id):
        return None
    return conversation


async def touch(session: AsyncSession, conversation_id: int, at: datetime = None) -> None:
    """Bump last_activity_at. Runs in the caller's transaction; the caller commits."""
    await session.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(last_activity_at=at or utcnow())
    )


async def list_for_user(session: AsyncSession, user_id: int, limit: int = 20, offset: int = 0) -> List[InboxEntry]:
    """Inbox rows, most recently active first.

    Conversations in which every message is hidden for ``user_id`` (or that
    have no messages yet) are left out; their rows still exist. So are
    conversations whose other participant no longer has a user row.
    """
    has_visible = (
        select(Message.id)
        .where(Message.conversation_id == Conversation.id, Message.visible_to(user_id))
        .exists()
    )
    res = await session.execute(
        select(Conversation, User)
        .join(User, User.id == Conversation.other_of(user_id))
        .where(Conversation.involving(user_id), has_visible)
        .order_by(Conversation.last_activity_at.desc(), Conversation.id.desc())
        .limit(limit)
        .offset(offset)
    )
    rows = res.all()
    if not rows:
        return []

    ids = [conversation.id for conversation, _ in rows]
    unread_rows = await session.execute(
        select(Message.conversation_id, func.count(Message.id))
        .where(Message.conversation_id.in_(ids), Message.unread_for(user_id))
        .group_by(Message.conversation_id)
    )
    unread = dict(unread_rows.all())
    latest = await last_visible_messages(session, ids, user_id)

    return [
        InboxEntry(
            conversation=conversation,
            other_user=other,
            last_message=latest.get(conversation.id),
            unread_count=unread.get(conversation.id, 0),
        )
        for conversation, other in rows
    ]


async def last_visible_messages(session: AsyncSession, conversation_ids: List[int], user_id: int) -> Dict[int, Message]:
    """Newest message visible to ``user_id`` in each conversation, keyed by conversation id."""
    ranked = (
        select(
            Message,
            func.row_number().over(
                partition_by=Message.conversation_id,
                order_by=(Message.created_at.desc(), Message.id.desc()),
            ).label('position'),
        )
        .where(Message.conversation_id.in_(conversation_ids), Message.visible_to(user_id))
        .subquery()
    )
    newest = aliased(Message, ranked)
    res = await session.execute(select(newest).where(ranked.c.position == 1))
    return {m.conversation_id: m for m in res.scalars().all()}
