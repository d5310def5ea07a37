"""
Message ledger: ordered messages inside a conversation.

Thread order is ``(created_at, id)`` ascending; ``id`` breaks ties between
messages stamped with the same instant. Each message carries one hide flag per
side. A message disappears for a participant as soon as that participant's
flag is set and is purged from storage once both flags are set.

Deleting a message that is already hidden for the requester (or already
purged) answers ``NOT_FOUND``; repeating a delete never changes state.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, update, delete, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..core import MESSAGES_SENT, MESSAGING_DENIED
from ..models.conversations import Conversation
from ..models.messages import Message
from ..utils import utcnow
from . import gate, registry
from .errors import ErrorCode, Result

logger = logging.getLogger(__name__)


def validate_body(body: Optional[str], max_length: int) -> Result:
    text = (body or '').strip()
    if not text:
        return Result.failure(ErrorCode.EMPTY_BODY)
    if len(text) > max_length:
        return Result.failure(ErrorCode.TOO_LONG)
    return Result.success(text)


async def send(session: AsyncSession, conversation_id: int, sender_id: int, body: str,
               max_length: int = None) -> Result:
    """Append a message. Message insert and conversation touch commit together."""
    if max_length is None:
        max_length = config.MESSAGE_MAX_LENGTH
    checked = validate_body(body, max_length)
    if not checked:
        return checked

    conversation = await session.get(Conversation, conversation_id)
    if conversation is None:
        return Result.failure(ErrorCode.NOT_FOUND)
    if not conversation.has_participant(sender_id):
        return Result.failure(ErrorCode.NOT_PARTICIPANT)

    # relationships may have changed since the conversation was opened
    decision = await gate.can_message(session, sender_id, conversation.other_participant(sender_id))
    if not decision.allowed:
        MESSAGING_DENIED.labels(reason=decision.reason.value).inc()
        logger.info({'msg': 'message_denied', 'conversation_id': conversation_id,
                     'sender_id': sender_id, 'reason': decision.reason.value})
        return Result.failure(ErrorCode.NOT_ALLOWED, decision.reason)

    now = utcnow()
    message = Message(conversation_id=conversation_id, sender_id=sender_id, body=checked.value, created_at=now)
    session.add(message)
    await registry.touch(session, conversation_id, now)
    await session.commit()

    MESSAGES_SENT.inc()
    logger.info({'msg': 'message_sent', 'conversation_id': conversation_id,
                 'message_id': message.id, 'sender_id': sender_id})
    return Result.success(message)


async def list_visible(session: AsyncSession, conversation_id: int, viewer_id: int,
                       limit: int = 50, offset: int = 0) -> Result:
    """A page of the thread as the viewer sees it; received messages on the page become read."""
    conversation = await registry.get_by_id(session, conversation_id, viewer_id)
    if conversation is None:
        return Result.failure(ErrorCode.NOT_FOUND)

    res = await session.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id, Message.visible_to(viewer_id))
        .order_by(*Message.thread_order())
        .limit(limit)
        .offset(offset)
    )
    messages = res.scalars().all()
    await mark_read(session, viewer_id, messages)
    return Result.success(messages)


async def list_latest(session: AsyncSession, conversation_id: int, viewer_id: int,
                      limit: int = 50, offset: int = 0) -> Result:
    """Like :func:`list_visible` but windowed from the newest end. Nothing is marked read.

    ``offset`` counts back from the newest visible message; the window itself
    comes back in thread order.
    """
    conversation = await registry.get_by_id(session, conversation_id, viewer_id)
    if conversation is None:
        return Result.failure(ErrorCode.NOT_FOUND)

    res = await session.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id, Message.visible_to(viewer_id))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return Result.success(list(reversed(res.scalars().all())))


async def list_since(session: AsyncSession, conversation_id: int, viewer_id: int, since: datetime,
                     after_id: int = None) -> Result:
    """Visible messages strictly newer than ``since``.

    With ``after_id``, messages stamped exactly ``since`` but with a larger id
    are included too, so a poll cursor of (last_timestamp, last_message_id)
    never skips a message that shares its timestamp. Nothing is marked read.
    """
    conversation = await registry.get_by_id(session, conversation_id, viewer_id)
    if conversation is None:
        return Result.failure(ErrorCode.NOT_FOUND)

    newer = Message.created_at > since
    if after_id is not None:
        newer = or_(newer, and_(Message.created_at == since, Message.id > after_id))

    res = await session.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id, Message.visible_to(viewer_id), newer)
        .order_by(*Message.thread_order())
    )
    return Result.success(res.scalars().all())


async def mark_read(session: AsyncSession, viewer_id: int, messages: Iterable[Message]) -> int:
    """Mark the given messages read when the viewer received them. Safe to repeat."""
    ids = [m.id for m in messages if m.sender_id != viewer_id and not m.is_read]
    if not ids:
        return 0
    await session.execute(
        update(Message)
        .where(Message.id.in_(ids), Message.is_read.is_(False))
        .values(is_read=True)
    )
    await session.commit()
    return len(ids)


async def soft_delete(session: AsyncSession, message_id: int, user_id: int,
                      conversation_id: int = None) -> Result:
    message = await session.get(Message, message_id)
    if message is None or (conversation_id is not None and message.conversation_id != conversation_id):
        return Result.failure(ErrorCode.NOT_FOUND)

    conversation = await session.get(Conversation, message.conversation_id)
    if conversation is None or not conversation.has_participant(user_id):
        return Result.failure(ErrorCode.NOT_PARTICIPANT)
    if message.is_hidden_for(user_id):
        return Result.failure(ErrorCode.NOT_FOUND)

    if message.sender_id == user_id:
        message.deleted_by_sender = True
    else:
        message.deleted_by_recipient = True

    if message.deleted_by_sender and message.deleted_by_recipient:
        await session.delete(message)
        logger.debug({'msg': 'message_purged', 'message_id': message_id})
    await session.commit()
    logger.info({'msg': 'message_deleted', 'message_id': message_id, 'user_id': user_id})
    return Result.success()


async def delete_conversation_for_user(session: AsyncSession, conversation_id: int, user_id: int) -> Result:
    """Hide every message of the conversation for one side. The conversation row stays."""
    conversation = await session.get(Conversation, conversation_id)
    if conversation is None:
        return Result.failure(ErrorCode.NOT_FOUND)
    if not conversation.has_participant(user_id):
        return Result.failure(ErrorCode.NOT_PARTICIPANT)

    in_conversation = Message.conversation_id == conversation_id
    await session.execute(
        update(Message)
        .where(in_conversation, Message.sender_id == user_id)
        .values(deleted_by_sender=True)
    )
    await session.execute(
        update(Message)
        .where(in_conversation, Message.sender_id != user_id)
        .values(deleted_by_recipient=True)
    )
    await session.execute(
        delete(Message)
        .where(in_conversation, Message.deleted_by_sender.is_(True), Message.deleted_by_recipient.is_(True))
    )
    await session.commit()
    logger.info({'msg': 'conversation_deleted_for_user', 'conversation_id': conversation_id, 'user_id': user_id})
    return Result.success()


async def unread_total(session: AsyncSession, user_id: int) -> int:
    res = await session.execute(
        select(func.count(Message.id))
        .join(Conversation, Message.conversation_id == Conversation.id)
        .where(Conversation.involving(user_id), Message.unread_for(user_id))
    )
    return res.scalar_one()
