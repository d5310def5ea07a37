from sqlalchemy import Column, Integer, Text, Boolean, DateTime, ForeignKey, Index, and_, or_
from . import Base
from ..utils import utcnow

class Message(Base):
    __tablename__ = 'messages'
    id = Column(Integer, primary_key=True)
    conversation_id = Column(Integer, ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)
    sender_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    deleted_by_sender = Column(Boolean, default=False, nullable=False)
    deleted_by_recipient = Column(Boolean, default=False, nullable=False)
    __table_args__ = (
        Index('ix_messages_conversation_created', 'conversation_id', 'created_at', 'id'),
    )

    @classmethod
    def visible_to(cls, user_id: int):
        """Messages whose viewer-side delete flag is not set."""
        return or_(
            and_(cls.sender_id == user_id, cls.deleted_by_sender.is_(False)),
            and_(cls.sender_id != user_id, cls.deleted_by_recipient.is_(False)),
        )

    @classmethod
    def unread_for(cls, user_id: int):
        return and_(
            cls.sender_id != user_id,
            cls.is_read.is_(False),
            cls.deleted_by_recipient.is_(False),
        )

    @classmethod
    def thread_order(cls):
        return (cls.created_at.asc(), cls.id.asc())

    def is_hidden_for(self, user_id: int) -> bool:
        if self.sender_id == user_id:
            return bool(self.deleted_by_sender)
        return bool(self.deleted_by_recipient)
