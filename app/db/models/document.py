"""
Document model backing the create/update document tools.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from sqlalchemy.sql import func
from app.db.base import Base


class Document(Base):
    """
    Document written by the assistant during a turn.

    Kinds: "text", "code", "sheet".
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    chat_id = Column(String(36), nullable=True, index=True)

    title = Column(String, nullable=False)
    kind = Column(String(16), nullable=False, default="text")
    content = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_document_user_created', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return f"<Document(id={self.id}, title='{self.title}', kind='{self.kind}')>"
