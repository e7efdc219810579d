"""
Turn orchestrator.

Runs one chat turn end to end: ownership check and chat creation, write-ahead
persistence of the user message, stream registration, generation with tools,
and post-completion bookkeeping (assistant message, usage counter).

Ordering within a chat is guaranteed by persisting the user message before
generation starts and the assistant message after it ends. Generation runs in
its own task, so a client disconnect does not truncate the conversation.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
from collections.abc import AsyncIterator
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import MAX_TOOL_STEPS
from app.core.identity import Identity
from app.core.plan_limits import action_for_search_mode
from app.db.models.chat import Chat
from app.llm import events
from app.llm.prompts import TITLE_PROMPT, RequestHints, system_prompt
from app.llm.provider import LLMProvider
from app.llm.router import get_model, is_reasoning_model
from app.llm.runner import LLMRunner, TurnResult
from app.llm.tools.base import ToolContext
from app.llm.tools.toolsets import ToolSet, policy_for, resolve_toolset
from app.llm.tools.web_search import SearxngClient
from app.services import chat_service
from app.services.chat_service import (
    ChatForbiddenError,
    ChatNotFoundError,
    PersistenceError,
    StreamNotFoundError,
)
from app.services.quota_service import increment_usage
from app.services.stream_registry import StreamRegistry, run_detached

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 80
ASSISTANT_SAVE_WARNING = "Your response was generated but could not be saved to this conversation."


@dataclass
class TurnRequest:
    chat_id: str
    message_id: str
    parts: List[Dict[str, Any]]
    attachments: List[Dict[str, Any]] = field(default_factory=list)
    model_id: str = "chat-model"
    visibility: str = "private"
    search_mode: str = "search"
    hints: RequestHints = field(default_factory=RequestHints)

    @property
    def text(self) -> str:
        return "".join(part.get("text", "") for part in self.parts if part.get("type") == "text")


@dataclass
class TurnHandle:
    stream_id: str
    chat_id: str
    events: AsyncIterator[str]


def fallback_title(text: str) -> str:
    return text.strip()[:TITLE_MAX_LENGTH] or "New chat"


def to_provider_message(role: str, parts: List[Dict[str, Any]], attachments: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """
    Convert stored message parts to a chat-completions message.

    Only text is replayed to the model; reasoning and past tool invocations
    stay in storage. Image attachments of user messages are passed as image
    content.
    """
    text = "".join(part.get("text", "") for part in parts or [] if part.get("type") == "text")
    images = [
        attachment for attachment in attachments or []
        if role == "user" and (attachment.get("contentType") or "").startswith("image/") and attachment.get("url")
    ]
    if not images:
        return {"role": role, "content": text}
    content: List[Dict[str, Any]] = [{"type": "text", "text": text}]
    content.extend({"type": "image_url", "image_url": {"url": image["url"]}} for image in images)
    return {"role": role, "content": content}


class TurnOrchestrator:
    """Coordinates persistence, generation and bookkeeping of chat turns."""

    def __init__(
        self,
        provider: LLMProvider,
        session_factory: Callable[[], Session],
        registry: Optional[StreamRegistry],
        searxng: Optional[SearxngClient] = None,
        max_steps: int = MAX_TOOL_STEPS,
    ):
        self.provider = provider
        self.session_factory = session_factory
        self.registry = registry
        self.searxng = searxng
        self.runner = LLMRunner(provider, max_steps=max_steps)

    # Database steps, run in the threadpool with their own session

    def _get_chat(self, chat_id: str) -> Optional[Chat]:
        db = self.session_factory()
        try:
            return chat_service.get_chat_by_id(db, chat_id)
        finally:
            db.close()

    def _create_chat(self, chat_id: str, owner_id: str, title: str, visibility: str) -> None:
        db = self.session_factory()
        try:
            chat_service.save_chat(db, chat_id, owner_id, title, visibility)
        except IntegrityError:
            # A concurrent turn created the same chat first
            db.rollback()
            chat = chat_service.get_chat_by_id(db, chat_id)
            if chat is None or chat.user_id != owner_id:
                raise ChatForbiddenError(chat_id)
        finally:
            db.close()

    def _load_history(self, chat_id: str) -> List[Tuple[str, Dict[str, Any]]]:
        db = self.session_factory()
        try:
            return [
                (message.id, to_provider_message(message.role, message.parts, message.attachments))
                for message in chat_service.get_messages_by_chat_id(db, chat_id)
            ]
        finally:
            db.close()

    def _save_user_message(self, turn: TurnRequest) -> None:
        db = self.session_factory()
        try:
            chat_service.save_messages(db, [{
                "id": turn.message_id,
                "chat_id": turn.chat_id,
                "role": "user",
                "parts": turn.parts,
                "attachments": turn.attachments,
            }])
        finally:
            db.close()

    def _create_stream(self, stream_id: str, chat_id: str) -> None:
        db = self.session_factory()
        try:
            chat_service.create_stream_id(db, stream_id, chat_id)
        finally:
            db.close()

    def _save_assistant_message(self, message_id: str, chat_id: str, parts: List[Dict[str, Any]]) -> None:
        db = self.session_factory()
        try:
            chat_service.save_messages(db, [{
                "id": message_id,
                "chat_id": chat_id,
                "role": "assistant",
                "parts": parts,
                "attachments": [],
                "created_at": datetime.now(timezone.utc),
            }])
        finally:
            db.close()

    def _increment_usage(self, user_id: str, action: str) -> None:
        db = self.session_factory()
        try:
            increment_usage(db, user_id, action)
        finally:
            db.close()

    def _latest_stream_id(self, chat_id: str) -> Optional[str]:
        db = self.session_factory()
        try:
            stream_ids = chat_service.get_stream_ids_by_chat_id(db, chat_id)
        finally:
            db.close()
        return stream_ids[-1] if stream_ids else None

    # Turn flow

    async def generate_title(self, text: str) -> str:
        """Short chat title from the first user message; falls back to its first 80 characters."""
        try:
            response = await self.provider.chat(
                messages=[
                    {"role": "system", "content": TITLE_PROMPT},
                    {"role": "user", "content": text},
                ],
                model=get_model("title-model"),
                max_tokens=40,
            )
            title = response.content.strip().strip('"').replace(":", "")
            if title:
                return title[:TITLE_MAX_LENGTH]
        except Exception as e:
            logger.warning(f"Title generation failed, using message text: {e}")
        return fallback_title(text)

    async def _ensure_chat(self, identity: Identity, turn: TurnRequest) -> None:
        chat = await run_in_threadpool(self._get_chat, turn.chat_id)
        if chat is None:
            title = await self.generate_title(turn.text)
            await run_in_threadpool(self._create_chat, turn.chat_id, identity.id, title, turn.visibility)
        elif chat.user_id != identity.id:
            logger.warning(f"Turn on foreign chat rejected: chat_id={turn.chat_id}, user_id={identity.id}")
            raise ChatForbiddenError(turn.chat_id)

    async def start_turn(self, identity: Identity, turn: TurnRequest) -> TurnHandle:
        """
        Start a turn and return a handle on its event stream.

        Everything that can fail before generation (ownership, user message,
        stream id) fails here, before any byte is streamed.

        Args:
            identity: Admitted identity of the request
            turn: The user's message and turn options

        Returns:
            TurnHandle whose events are encoded SSE frames

        Raises:
            ChatForbiddenError: chat belongs to another identity
            PersistenceError: user message or stream id could not be stored
        """
        await self._ensure_chat(identity, turn)

        stored = await run_in_threadpool(self._load_history, turn.chat_id)
        history = [message for _, message in stored]
        # A retried message is already part of the history
        if turn.message_id not in {message_id for message_id, _ in stored}:
            history.append(to_provider_message("user", turn.parts, turn.attachments))

        try:
            await run_in_threadpool(self._save_user_message, turn)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist user message: chat_id={turn.chat_id}, error={e}", exc_info=True)
            raise PersistenceError("user message") from e

        stream_id = str(uuid.uuid4())
        try:
            await run_in_threadpool(self._create_stream, stream_id, turn.chat_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record stream id: chat_id={turn.chat_id}, error={e}", exc_info=True)
            raise PersistenceError("stream id") from e

        reasoning = is_reasoning_model(turn.model_id)
        policy = policy_for(turn.search_mode, reasoning)
        model = get_model(turn.model_id)
        toolset = resolve_toolset(
            policy,
            ToolContext(
                user_id=identity.id,
                chat_id=turn.chat_id,
                session_factory=self.session_factory,
                provider=self.provider,
                model=get_model("chat-model"),
            ),
            searxng=self.searxng,
        )
        messages = [{"role": "system", "content": system_prompt(turn.hints, turn.search_mode, reasoning)}] + history

        logger.info(
            f"Turn started: chat_id={turn.chat_id}, stream_id={stream_id}, user_type={identity.user_type}, "
            f"model={model}, policy={policy.value}, tools={toolset.names}"
        )

        producer = self._produce(identity, turn, stream_id, messages, model, toolset)
        if self.registry is not None:
            stream = await self.registry.register(stream_id, turn.chat_id, producer)
        else:
            stream = run_detached(stream_id, producer)
        return TurnHandle(stream_id=stream_id, chat_id=turn.chat_id, events=stream)

    async def _produce(
        self,
        identity: Identity,
        turn: TurnRequest,
        stream_id: str,
        messages: List[Dict[str, Any]],
        model: str,
        toolset: ToolSet,
    ) -> AsyncIterator[str]:
        assistant_id = str(uuid.uuid4())
        result = TurnResult()
        yield events.start_event(stream_id, turn.chat_id, assistant_id).encode()

        try:
            async for event in self.runner.run_turn(messages, model, toolset, result):
                yield event.encode()
        except Exception as e:
            logger.error(f"Generation failed: chat_id={turn.chat_id}, stream_id={stream_id}, error={e}", exc_info=True)
            yield events.error_event().encode()
            return

        try:
            await run_in_threadpool(self._save_assistant_message, assistant_id, turn.chat_id, result.parts)
        except Exception as e:
            logger.error(f"Failed to persist assistant message: chat_id={turn.chat_id}, error={e}", exc_info=True)
            yield events.warning_event(ASSISTANT_SAVE_WARNING).encode()

        if not identity.is_guest:
            action = action_for_search_mode(turn.search_mode)
            try:
                await run_in_threadpool(self._increment_usage, identity.id, action)
            except Exception as e:
                logger.error(f"Failed to track usage: user_id={identity.id}, action={action}, error={e}", exc_info=True)

        logger.info(
            f"Turn finished: chat_id={turn.chat_id}, stream_id={stream_id}, steps={result.steps}, "
            f"finish_reason={result.finish_reason}"
        )
        yield events.finish_event(result.finish_reason or "stop", result.usage).encode()

    async def resume_chat(self, identity: Identity, chat_id: str) -> Optional[AsyncIterator[str]]:
        """
        Attach to the most recent stream of a chat.

        Returns:
            Reader over the live stream, or None when the registry is disabled
            or the latest stream already finished

        Raises:
            ChatNotFoundError: chat does not exist
            ChatForbiddenError: private chat of another identity
            StreamNotFoundError: chat has no recorded stream
        """
        if self.registry is None:
            return None

        chat = await run_in_threadpool(self._get_chat, chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        if not chat_service.can_read_chat(chat, identity.id):
            raise ChatForbiddenError(chat_id)

        stream_id = await run_in_threadpool(self._latest_stream_id, chat_id)
        if stream_id is None:
            raise StreamNotFoundError(chat_id)

        return await self.registry.resume(stream_id)
