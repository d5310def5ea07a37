from fastapi import APIRouter, Depends, Form, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.users import RegisterIn, TokenOut, UserOut
from ..schemas.relationships import RelationshipOut, CanMessageOut
from .. import crud
from ..auth import get_current_user
from ..messaging import gate
from ..models import get_session
from .deps import http_error

router = APIRouter()


@router.post('/register', response_model=UserOut)
async def register(payload: RegisterIn, session: AsyncSession = Depends(get_session)):
    user = await crud.create_user(session, payload)
    if user is None:
        raise HTTPException(409, 'username or email already registered')
    return user


@router.post('/login', response_model=TokenOut)
async def login(
    username: str = Form(...),
    password: str = Form(...),
    session: AsyncSession = Depends(get_session),
):
    token = await crud.authenticate_user(session, username, password)
    if not token:
        raise HTTPException(status_code=401, detail='Invalid credentials')
    return token


@router.get('/{user_id}', response_model=UserOut)
async def get_user(user_id: int, session: AsyncSession = Depends(get_session)):
    user = await crud.get_user_by_id(session, user_id)
    if not user:
        raise HTTPException(404, 'User not found')
    return user


async def _relationship(session: AsyncSession, me: int, other: int) -> dict:
    return {
        'ok': True,
        'following': await crud.is_following(session, me, other),
        'followed_by': await crud.is_following(session, other, me),
        'blocked': await crud.is_blocked(session, me, other),
    }


@router.post('/{user_id}/follow', response_model=RelationshipOut)
async def follow(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    result = await crud.follow(session, current_user['id'], user_id)
    if not result:
        raise http_error(result)
    return await _relationship(session, current_user['id'], user_id)


@router.delete('/{user_id}/follow', response_model=RelationshipOut)
async def unfollow(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await crud.unfollow(session, current_user['id'], user_id)
    return await _relationship(session, current_user['id'], user_id)


@router.post('/{user_id}/block', response_model=RelationshipOut)
async def block(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    result = await crud.block(session, current_user['id'], user_id)
    if not result:
        raise http_error(result)
    return await _relationship(session, current_user['id'], user_id)


@router.delete('/{user_id}/block', response_model=RelationshipOut)
async def unblock(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await crud.unblock(session, current_user['id'], user_id)
    return await _relationship(session, current_user['id'], user_id)


@router.get('/{user_id}/can-message', response_model=CanMessageOut)
async def can_message(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    decision = await gate.can_message(session, current_user['id'], user_id)
    return {
        'can_message': decision.allowed,
        'reason': decision.reason.value if decision.reason else None,
        'message': decision.message,
    }
