from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base


class Stream(Base):
    """One generation attempt for a chat; the highest `seq` is the most recent."""
    __tablename__ = "streams"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False, index=True)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    chat = relationship("Chat", back_populates="streams")
