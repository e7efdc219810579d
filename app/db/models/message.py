"""
Message model. Append-only; `seq` is the persisted insertion order.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base


class Message(Base):
    __tablename__ = "messages"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False, index=True)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False)  # user | assistant
    parts = Column(JSON, nullable=False, default=list)
    attachments = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    chat = relationship("Chat", back_populates="messages")

    __table_args__ = (
        Index('idx_message_chat_seq', 'chat_id', 'seq'),
    )
