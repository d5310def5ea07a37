from sqlalchemy import Column, Integer, String, Boolean, DateTime
from . import Base
from ..utils import utcnow

class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(150), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    display_name = Column(String(150), nullable=True)
    avatar_url = Column(String(255), nullable=True)
    is_disabled = Column(Boolean, default=False, nullable=False)
    is_pending = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def can_receive_messages(self) -> bool:
        return not (self.is_disabled or self.is_pending)
