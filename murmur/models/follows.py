from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from . import Base
from ..utils import utcnow

class UserFollow(Base):
    __tablename__ = 'user_follows'
    id = Column(Integer, primary_key=True)
    follower_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    followee_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    __table_args__ = (
        UniqueConstraint('follower_id', 'followee_id', name='uix_follow_pair'),
    )
