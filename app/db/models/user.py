from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from app.db.base import Base

class User(Base):
    """Mirror of the auth provider's user record, used for verified-user lookups."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True)  # provider UUID
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
