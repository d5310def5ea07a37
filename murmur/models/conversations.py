from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, case
from . import Base
from ..utils import utcnow

class Conversation(Base):
    """The single 1:1 channel between two users, keyed by the ordered pair (low, high)."""
    __tablename__ = 'conversations'
    id = Column(Integer, primary_key=True)
    participant_low = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    participant_high = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    last_activity_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    __table_args__ = (
        UniqueConstraint('participant_low', 'participant_high', name='uix_conversation_pair'),
        CheckConstraint('participant_low < participant_high', name='ck_conversation_pair_order'),
    )

    @staticmethod
    def canonical_pair(user_a: int, user_b: int) -> tuple[int, int]:
        return (user_a, user_b) if user_a < user_b else (user_b, user_a)

    @classmethod
    def between(cls, user_a: int, user_b: int):
        """WHERE clause matching the conversation of an unordered pair."""
        low, high = cls.canonical_pair(user_a, user_b)
        return (cls.participant_low == low) & (cls.participant_high == high)

    @classmethod
    def involving(cls, user_id: int):
        return (cls.participant_low == user_id) | (cls.participant_high == user_id)

    @classmethod
    def other_of(cls, user_id: int):
        """SQL expression for the participant that is not ``user_id``."""
        return case((cls.participant_low == user_id, cls.participant_high), else_=cls.participant_low)

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.participant_low, self.participant_high)

    def other_participant(self, user_id: int) -> int:
        return self.participant_high if user_id == self.participant_low else self.participant_low
