from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON
from sqlalchemy.sql import func
from app.db.base import Base


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    provider_payment_id = Column(String, nullable=False, index=True)
    provider_order_id = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String, nullable=False, default="pending")  # pending | completed | failed | refunded
    plan_type = Column(String, nullable=False)
    billing_period = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
