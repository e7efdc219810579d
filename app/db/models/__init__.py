"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.
"""
from app.db.models.user import User
from app.db.models.subscription import Subscription
from app.db.models.usage import UsageRecord
from app.db.models.chat import Chat
from app.db.models.message import Message
from app.db.models.stream import Stream
from app.db.models.payment_transaction import PaymentTransaction
from app.db.models.document import Document

__all__ = [
    "User",
    "Subscription",
    "UsageRecord",
    "Chat",
    "Message",
    "Stream",
    "PaymentTransaction",
    "Document",
]
