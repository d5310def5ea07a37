from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config, crud
from ..auth import get_current_user
from ..messaging import gate, ledger, registry
from ..models import get_session
from ..schemas.messages import (
    MessageIn,
    MessageOut,
    ConversationOut,
    InboxEntryOut,
    InboxOut,
    ConversationViewOut,
    PollMessageOut,
    PollOut,
    UnreadCountOut,
    ActionOkOut,
)
from ..schemas.users import UserOut
from ..utils import as_naive_utc
from .deps import require_messaging, error_detail, http_error

router = APIRouter(dependencies=[Depends(require_messaging)])


def _not_found(what: str = 'Conversation') -> HTTPException:
    return HTTPException(404, detail={'code': 'NOT_FOUND', 'reason': None, 'message': f'{what} not found.'})


@router.get('', response_model=InboxOut)
async def inbox(
    page: int = Query(1, ge=1),
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    per_page = config.INBOX_PAGE_SIZE
    entries = await registry.list_for_user(session, current_user['id'], per_page + 1, (page - 1) * per_page)
    has_more = len(entries) > per_page
    return InboxOut(
        inbox=[
            InboxEntryOut(
                conversation=ConversationOut.model_validate(e.conversation),
                other_user=UserOut.model_validate(e.other_user),
                last_message=MessageOut.model_validate(e.last_message) if e.last_message else None,
                unread_count=e.unread_count,
            )
            for e in entries[:per_page]
        ],
        page=page,
        has_more=has_more,
    )


@router.get('/unread-count', response_model=UnreadCountOut)
async def unread_count(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return {'unread': await ledger.unread_total(session, current_user['id'])}


@router.get('/search', response_model=List[UserOut])
async def search(
    q: str = Query('', max_length=150),
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Users matching ``q`` that the caller may message right now."""
    q = q.strip()
    if not q:
        return []
    found = []
    for user in await crud.search_users(session, q, config.SEARCH_LIMIT):
        if user.id == current_user['id']:
            continue
        decision = await gate.can_message(session, current_user['id'], user.id)
        if decision.allowed:
            found.append(user)
    return found


@router.post('/new/{username}', response_model=ConversationOut)
async def start_conversation(
    username: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    other = await crud.get_user_by_username(session, username)
    if other is None:
        raise _not_found('User')

    conversation = await registry.find_between(session, current_user['id'], other.id)
    if conversation is None:
        decision = await gate.can_message(session, current_user['id'], other.id)
        if not decision.allowed:
            raise HTTPException(403, detail=error_detail(decision.reason))
        conversation = await registry.get_or_create(session, current_user['id'], other.id)
    return conversation


@router.get('/{conversation_id}', response_model=ConversationViewOut)
async def show_conversation(
    conversation_id: int,
    page: int = Query(1, ge=1),
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    me = current_user['id']
    conversation = await registry.get_by_id(session, conversation_id, me)
    if conversation is None:
        raise _not_found()
    other = await crud.get_user_by_id(session, conversation.other_participant(me))
    if other is None:
        raise _not_found()

    per_page = config.CONVERSATION_PAGE_SIZE
    # page 1 is the newest window; has_more means older messages exist
    result = await ledger.list_latest(session, conversation_id, me, per_page + 1, (page - 1) * per_page)
    if not result:
        raise http_error(result)
    messages = result.value
    has_more = len(messages) > per_page
    if has_more:
        messages = messages[1:]
    await ledger.mark_read(session, me, messages)

    decision = await gate.can_message(session, me, other.id)
    return ConversationViewOut(
        conversation=ConversationOut.model_validate(conversation),
        other_user=UserOut.model_validate(other),
        messages=[MessageOut.model_validate(m) for m in messages],
        page=page,
        has_more=has_more,
        can_reply=decision.allowed,
        cannot_reply_reason=decision.message,
        max_body_length=config.MESSAGE_MAX_LENGTH,
    )


@router.get('/{conversation_id}/poll', response_model=PollOut)
async def poll_conversation(
    conversation_id: int,
    since: datetime = Query(...),
    after_id: Optional[int] = Query(None),
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    me = current_user['id']
    since = as_naive_utc(since)
    result = await ledger.list_since(session, conversation_id, me, since, after_id=after_id)
    if not result:
        raise _not_found()
    messages = result.value

    # the client polls while the thread is open on screen
    await ledger.mark_read(session, me, messages)

    conversation = await registry.get_by_id(session, conversation_id, me)
    decision = await gate.can_message(session, me, conversation.other_participant(me))
    return PollOut(
        messages=[
            PollMessageOut(
                message_id=m.id,
                sender_id=m.sender_id,
                body=m.body,
                created_at=m.created_at,
                is_mine=m.sender_id == me,
            )
            for m in messages
        ],
        can_reply=decision.allowed,
        cannot_reply_reason=decision.message,
        last_timestamp=messages[-1].created_at if messages else since,
        last_message_id=messages[-1].id if messages else after_id,
    )


@router.post('/{conversation_id}/send', response_model=MessageOut)
async def send_message(
    conversation_id: int,
    payload: MessageIn,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    result = await ledger.send(session, conversation_id, current_user['id'], payload.body)
    if not result:
        raise http_error(result)
    return result.value


@router.post('/{conversation_id}/delete/{message_id}', response_model=ActionOkOut)
async def delete_message(
    conversation_id: int,
    message_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    result = await ledger.soft_delete(session, message_id, current_user['id'], conversation_id=conversation_id)
    if not result:
        raise http_error(result)
    return {'ok': True, 'message': 'Message deleted.'}


@router.post('/{conversation_id}/delete', response_model=ActionOkOut)
async def delete_conversation(
    conversation_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    result = await ledger.delete_conversation_for_user(session, conversation_id, current_user['id'])
    if not result:
        raise http_error(result)
    return {'ok': True, 'message': 'Conversation deleted.'}
