from sqlalchemy import Column, Integer, String, DateTime, Date, UniqueConstraint
from sqlalchemy.sql import func
from datetime import date as date_type, datetime, timezone
from app.db.base import Base


class UsageRecord(Base):
    """
    Daily usage counters for search and deep search.

    One row per user per UTC calendar day, created lazily on first use.
    Counters only grow within a day; reset_usage() is the only way back to zero.
    """
    __tablename__ = "usage_tracking"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    searches_used = Column(Integer, default=0, nullable=False)
    deep_searches_used = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Unique constraint: one record per user per day
    __table_args__ = (
        UniqueConstraint('user_id', 'date', name='uq_usage_user_date'),
    )

    @staticmethod
    def today() -> date_type:
        """Current UTC calendar day, the fixed accounting boundary."""
        return datetime.now(timezone.utc).date()
