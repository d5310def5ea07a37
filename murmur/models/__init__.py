from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker

from ..config import DATABASE_URL

engine = create_async_engine(DATABASE_URL, future=True, echo=False)
AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()


async def get_session():
    """FastAPI dependency: one session per request, closed (and rolled back if left open) afterwards."""
    async with AsyncSessionLocal() as session:
        yield session

# Import models to register tables
from .users import User  # noqa: F401,E402
from .follows import UserFollow  # noqa: F401,E402
from .blocks import UserBlock  # noqa: F401,E402
from .conversations import Conversation  # noqa: F401,E402
from .messages import Message  # noqa: F401,E402
