"""
Conversation model.
"""
from sqlalchemy import Column, String, Text, DateTime, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base


class Chat(Base):
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, index=True)  # client-supplied UUID
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(Text, nullable=False)
    visibility = Column(String(16), nullable=False, default="private")  # public | private
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    messages = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="Message.seq",
    )
    streams = relationship(
        "Stream",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="Stream.seq",
    )

    __table_args__ = (
        Index('idx_chat_user_created', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return f"<Chat(id={self.id}, user_id={self.user_id}, visibility='{self.visibility}')>"
