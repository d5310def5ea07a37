from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from . import Base
from ..utils import utcnow

class UserBlock(Base):
    __tablename__ = 'user_blocks'
    id = Column(Integer, primary_key=True)
    blocker_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    blocked_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    __table_args__ = (
        UniqueConstraint('blocker_id', 'blocked_id', name='uix_block_pair'),
    )
