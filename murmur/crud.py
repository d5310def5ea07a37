import logging

from passlib.context import CryptContext
from sqlalchemy import select, delete, or_, and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models.users import User
from .models.follows import UserFollow
from .models.blocks import UserBlock
from .auth import create_access_token
from .messaging.errors import ErrorCode, Result

logger = logging.getLogger(__name__)

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto')

# users
async def create_user(session: AsyncSession, payload):
    user = User(
        username=payload.username,
        email=payload.email,
        hashed_password=pwd_ctx.hash(payload.password),
        display_name=payload.display_name,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        # username or email taken
        return None
    await session.refresh(user)
    logger.info({'msg': 'user_created', 'user_id': user.id})
    return user

async def authenticate_user(session: AsyncSession, username: str, password: str):
    q = await session.execute(select(User).where(User.username == username))
    user = q.scalars().first()
    if not user or not pwd_ctx.verify(password, user.hashed_password):
        return None
    if user.is_disabled:
        return None
    access = create_access_token({'id': user.id, 'username': user.username})
    return {'access_token': access, 'token_type': 'bearer'}

async def get_user_by_id(session: AsyncSession, user_id: int):
    return await session.get(User, user_id)

async def get_user_by_username(session: AsyncSession, username: str):
    q = await session.execute(select(User).where(User.username == username))
    return q.scalars().first()

async def search_users(session: AsyncSession, query: str, limit: int = 20):
    pattern = f'%{query.lower()}%'
    res = await session.execute(
        select(User)
        .where(or_(func.lower(User.username).like(pattern), func.lower(User.display_name).like(pattern)))
        .where(User.is_disabled.is_(False), User.is_pending.is_(False))
        .order_by(User.username.asc())
        .limit(limit)
    )
    return res.scalars().all()

async def _validate_target(session: AsyncSession, actor_id: int, target_id: int, check_status: bool):
    if actor_id == target_id:
        return ErrorCode.SELF
    target = await session.get(User, target_id)
    if target is None:
        return ErrorCode.NOT_FOUND
    if check_status and not target.can_receive_messages:
        return ErrorCode.UNAVAILABLE
    return None

# follows
async def is_following(session: AsyncSession, follower_id: int, followee_id: int) -> bool:
    res = await session.execute(
        select(UserFollow.id).where(UserFollow.follower_id == follower_id, UserFollow.followee_id == followee_id)
    )
    return res.scalar() is not None

async def are_mutual_follows(session: AsyncSession, user_a: int, user_b: int) -> bool:
    res = await session.execute(
        select(func.count(UserFollow.id)).where(or_(
            and_(UserFollow.follower_id == user_a, UserFollow.followee_id == user_b),
            and_(UserFollow.follower_id == user_b, UserFollow.followee_id == user_a),
        ))
    )
    return res.scalar_one() == 2

async def follow(session: AsyncSession, follower_id: int, followee_id: int) -> Result:
    error = await _validate_target(session, follower_id, followee_id, check_status=True)
    if error is not None:
        return Result.failure(error)
    if await is_following(session, follower_id, followee_id):
        # already following
        return Result.success()
    session.add(UserFollow(follower_id=follower_id, followee_id=followee_id))
    try:
        await session.commit()
    except IntegrityError:
        # concurrent follow won the insert
        await session.rollback()
    return Result.success()

async def unfollow(session: AsyncSession, follower_id: int, followee_id: int) -> Result:
    await session.execute(
        delete(UserFollow).where(UserFollow.follower_id == follower_id, UserFollow.followee_id == followee_id)
    )
    await session.commit()
    return Result.success()

# blocks
async def is_blocked(session: AsyncSession, blocker_id: int, blocked_id: int) -> bool:
    res = await session.execute(
        select(UserBlock.id).where(UserBlock.blocker_id == blocker_id, UserBlock.blocked_id == blocked_id)
    )
    return res.scalar() is not None

async def has_block_between(session: AsyncSession, user_a: int, user_b: int) -> bool:
    res = await session.execute(
        select(UserBlock.id).where(or_(
            and_(UserBlock.blocker_id == user_a, UserBlock.blocked_id == user_b),
            and_(UserBlock.blocker_id == user_b, UserBlock.blocked_id == user_a),
        )).limit(1)
    )
    return res.scalar() is not None

async def block(session: AsyncSession, blocker_id: int, blocked_id: int) -> Result:
    error = await _validate_target(session, blocker_id, blocked_id, check_status=False)
    if error is not None:
        return Result.failure(error)
    if await is_blocked(session, blocker_id, blocked_id):
        return Result.success()
    session.add(UserBlock(blocker_id=blocker_id, blocked_id=blocked_id))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
    logger.info({'msg': 'user_blocked', 'blocker_id': blocker_id, 'blocked_id': blocked_id})
    return Result.success()

async def unblock(session: AsyncSession, blocker_id: int, blocked_id: int) -> Result:
    await session.execute(
        delete(UserBlock).where(UserBlock.blocker_id == blocker_id, UserBlock.blocked_id == blocked_id)
    )
    await session.commit()
    return Result.success()
