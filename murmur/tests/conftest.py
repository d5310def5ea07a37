import os
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

# Tests always run on a throwaway SQLite file; never on DATABASE_URL from the environment.
TEST_DB = Path(tempfile.gettempdir()) / f'murmur-test-{os.getpid()}.db'
os.environ['DATABASE_URL'] = os.getenv('MURMUR_TEST_DATABASE_URL', f'sqlite+aiosqlite:///{TEST_DB}')
os.environ.setdefault('JWT_SECRET', 'test-secret')

from murmur import config  # noqa: E402
from murmur.models import engine, Base, AsyncSessionLocal  # noqa: E402
from murmur.models.users import User  # noqa: E402
from murmur.models.follows import UserFollow  # noqa: E402
from murmur.models.blocks import UserBlock  # noqa: E402


@pytest_asyncio.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    # connections are bound to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def session(db):
    async with AsyncSessionLocal() as s:
        yield s


@pytest.fixture
def max_length(monkeypatch):
    monkeypatch.setattr(config, 'MESSAGE_MAX_LENGTH', 1000)
    return 1000


async def make_user(session, username, **fields):
    user = User(username=username, email=f'{username}@example.com', hashed_password='!', **fields)
    session.add(user)
    await session.commit()
    return user


async def add_follow(session, follower, followee):
    session.add(UserFollow(follower_id=follower.id, followee_id=followee.id))
    await session.commit()


async def add_block(session, blocker, blocked):
    session.add(UserBlock(blocker_id=blocker.id, blocked_id=blocked.id))
    await session.commit()


async def befriend(session, a, b):
    await add_follow(session, a, b)
    await add_follow(session, b, a)


@pytest_asyncio.fixture
async def alice(session):
    return await make_user(session, 'alice', display_name='Alice')


@pytest_asyncio.fixture
async def bob(session):
    return await make_user(session, 'bob', display_name='Bob')


@pytest_asyncio.fixture
async def carol(session):
    return await make_user(session, 'carol', display_name='Carol')
