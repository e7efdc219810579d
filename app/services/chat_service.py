"""
Chat persistence service.

Row-level queries for chats, messages and stream ids. All functions take an
open SQLAlchemy session and commit their own writes.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional, Tuple
from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.db.models.chat import Chat
from app.db.models.message import Message
from app.db.models.stream import Stream

logger = logging.getLogger(__name__)

VISIBILITY_TYPES = ("public", "private")


class ChatNotFoundError(Exception):
    """Chat does not exist."""


class ChatForbiddenError(Exception):
    """Identity does not own the chat it tried to write to."""


class PersistenceError(Exception):
    """A write the turn depends on could not be made durable."""


class StreamNotFoundError(Exception):
    """Chat has no recorded stream."""


def get_chat_by_id(db: Session, chat_id: str) -> Optional[Chat]:
    return db.query(Chat).filter(Chat.id == chat_id).first()


def save_chat(db: Session, chat_id: str, user_id: str, title: str, visibility: str = "private") -> Chat:
    """Create a chat owned by user_id."""
    chat = Chat(
        id=chat_id,
        user_id=user_id,
        title=title,
        visibility=visibility if visibility in VISIBILITY_TYPES else "private",
        created_at=datetime.now(timezone.utc),
    )
    db.add(chat)
    db.commit()
    db.refresh(chat)
    logger.info(f"Chat created: chat_id={chat.id}, user_id={user_id}, visibility={chat.visibility}")
    return chat


def get_messages_by_chat_id(db: Session, chat_id: str) -> List[Message]:
    """Messages of a chat in persisted insertion order."""
    return db.query(Message).filter(Message.chat_id == chat_id).order_by(Message.seq).all()


def save_messages(db: Session, messages: List[Dict[str, Any]]) -> int:
    """
    Append messages to their chats.

    Messages whose id is already stored in the same chat are skipped, so a
    resubmitted turn does not duplicate its user message.

    Args:
        db: Database session
        messages: Dicts with id, chat_id, role, parts, attachments

    Returns:
        Number of messages inserted

    Raises:
        PersistenceError: a message id is already stored in a different chat
    """
    ids = [message["id"] for message in messages]
    existing = {
        row.id: row.chat_id
        for row in db.query(Message.id, Message.chat_id).filter(Message.id.in_(ids)).all()
    }

    inserted = 0
    for message in messages:
        if message["id"] in existing:
            if existing[message["id"]] != message["chat_id"]:
                logger.warning(
                    f"Message id already used in another chat: message_id={message['id']}, chat_id={message['chat_id']}"
                )
                raise PersistenceError(f"message {message['id']} belongs to another chat")
            logger.debug(f"Message already stored, skipping: message_id={message['id']}")
            continue
        db.add(Message(
            id=message["id"],
            chat_id=message["chat_id"],
            role=message["role"],
            parts=message.get("parts") or [],
            attachments=message.get("attachments") or [],
            created_at=message.get("created_at") or datetime.now(timezone.utc),
        ))
        inserted += 1

    db.commit()
    return inserted


def count_user_messages(db: Session, user_id: str, hours: int = 24) -> int:
    """Count user-role messages sent by user_id across their chats in the last `hours`."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
    return (
        db.query(Message)
        .join(Chat, Chat.id == Message.chat_id)
        .filter(
            Chat.user_id == user_id,
            Message.role == "user",
            Message.created_at >= cutoff,
        )
        .count()
    )


def create_stream_id(db: Session, stream_id: str, chat_id: str) -> Stream:
    stream = Stream(id=stream_id, chat_id=chat_id, created_at=datetime.now(timezone.utc))
    db.add(stream)
    db.commit()
    return stream


def get_stream_ids_by_chat_id(db: Session, chat_id: str) -> List[str]:
    """Stream ids of a chat, oldest first."""
    rows = db.query(Stream.id).filter(Stream.chat_id == chat_id).order_by(Stream.seq).all()
    return [row.id for row in rows]


def delete_chat_by_id(db: Session, chat_id: str) -> None:
    """Delete a chat with its messages and stream ids."""
    chat = get_chat_by_id(db, chat_id)
    if not chat:
        raise ChatNotFoundError(chat_id)
    db.delete(chat)
    db.commit()
    logger.info(f"Chat deleted: chat_id={chat_id}")


def update_chat_visibility(db: Session, chat_id: str, visibility: str) -> Chat:
    if visibility not in VISIBILITY_TYPES:
        raise ValueError(f"Invalid visibility: {visibility}")
    chat = get_chat_by_id(db, chat_id)
    if not chat:
        raise ChatNotFoundError(chat_id)
    chat.visibility = visibility
    db.commit()
    db.refresh(chat)
    logger.info(f"Chat visibility changed: chat_id={chat_id}, visibility={visibility}")
    return chat


def get_chats_by_user_id(db: Session, user_id: str, page: int = 1, page_size: int = 20) -> Tuple[List[Chat], int]:
    """Paginated chats of a user, newest first."""
    query = db.query(Chat).filter(Chat.user_id == user_id)
    total = query.count()
    offset = (page - 1) * page_size
    chats = query.order_by(desc(Chat.created_at)).offset(offset).limit(page_size).all()
    return chats, total


def can_read_chat(chat: Chat, identity_id: str) -> bool:
    """Public chats are readable by anyone; private chats only by their owner."""
    return chat.visibility != "private" or chat.user_id == identity_id
