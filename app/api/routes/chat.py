"""
Chat endpoints: streamed turns, stream resumption and chat management.
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.auth_dependency import (
    get_current_identity,
    get_db,
    get_session_factory,
    require_authenticated_user,
)
from app.core.identity import AuthenticatedUser, Identity
from app.core.logging_config import sanitize_log_data
from app.core.plan_limits import action_for_search_mode
from app.core.quota_guard import admit_turn
from app.core.rate_limit import enforce_message_cap
from app.llm.openai_provider import OpenAIProvider
from app.llm.prompts import RequestHints
from app.llm.provider import LLMProvider
from app.schemas.chat import ChatRequest, ChatSummary, MessageResponse, VisibilityUpdateRequest
from app.services import chat_service
from app.services.chat_service import (
    ChatForbiddenError,
    ChatNotFoundError,
    PersistenceError,
    StreamNotFoundError,
)
from app.services.guest_usage import GuestUsageTracker, get_guest_usage_tracker
from app.services.stream_registry import StreamRegistry, get_stream_registry
from app.services.turn_service import TurnOrchestrator, TurnRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}

_provider: Optional[LLMProvider] = None


def get_llm_provider() -> LLMProvider:
    """Process-wide model provider."""
    global _provider
    if _provider is None:
        try:
            _provider = OpenAIProvider()
        except ValueError:
            logger.warning("OpenAI provider not available - chat disabled")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Chat model provider is not configured"
            )
    return _provider


def get_turn_orchestrator(
    provider: LLMProvider = Depends(get_llm_provider),
    session_factory=Depends(get_session_factory),
    registry: Optional[StreamRegistry] = Depends(get_stream_registry),
) -> TurnOrchestrator:
    return TurnOrchestrator(provider=provider, session_factory=session_factory, registry=registry)


def _float_header(request: Request, name: str) -> Optional[float]:
    value = request.headers.get(name)
    try:
        return float(value) if value else None
    except ValueError:
        return None


def get_request_hints(request: Request) -> RequestHints:
    """Origin hints from edge geolocation headers, when the platform sets them."""
    return RequestHints(
        latitude=_float_header(request, "X-Vercel-IP-Latitude"),
        longitude=_float_header(request, "X-Vercel-IP-Longitude"),
        city=request.headers.get("X-Vercel-IP-City"),
        country=request.headers.get("X-Vercel-IP-Country"),
    )


@router.post("")
async def create_turn(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    guest_tracker: GuestUsageTracker = Depends(get_guest_usage_tracker),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
):
    """
    Run one chat turn and stream its events as server-sent events.

    Status codes:
    - 400: malformed body
    - 403: not entitled (structured detail) or chat owned by someone else
    - 429: daily message cap exceeded
    - 500: the turn could not be started
    """
    await guest_tracker.sweep()

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request body")
    try:
        body = ChatRequest.model_validate(payload)
    except ValidationError as e:
        logged = sanitize_log_data(payload) if isinstance(payload, dict) else type(payload).__name__
        logger.info(f"Invalid chat request body: {logged}, errors={e.error_count()}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request body")

    try:
        action = action_for_search_mode(body.selectedSearchMode)
        await admit_turn(db, identity, action, guest_tracker)
        await run_in_threadpool(enforce_message_cap, db, identity)

        turn = TurnRequest(
            chat_id=str(body.id),
            message_id=str(body.message.id),
            parts=[part.model_dump() for part in body.message.parts],
            attachments=[attachment.model_dump() for attachment in body.message.attachments],
            model_id=body.selectedChatModel,
            visibility=body.selectedVisibilityType,
            search_mode=body.selectedSearchMode,
            hints=get_request_hints(request),
        )
        handle = await orchestrator.start_turn(identity, turn)

    except HTTPException:
        raise
    except ChatForbiddenError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while processing your request!"
        )
    except Exception as e:
        logger.error(f"Chat turn failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while processing your request!"
        )

    headers = dict(SSE_HEADERS)
    headers["X-Stream-Id"] = handle.stream_id
    headers["X-Chat-Id"] = handle.chat_id
    return StreamingResponse(handle.events, media_type="text/event-stream", headers=headers)


@router.get("")
async def resume_stream(
    chatId: Optional[str] = Query(None),
    conversationId: Optional[str] = Query(None),
    identity: Identity = Depends(get_current_identity),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
):
    """
    Resume the most recent stream of a chat.

    204 when resumable streams are disabled or the latest stream already
    finished; the client then reloads persisted messages instead.
    """
    if orchestrator.registry is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    chat_id = chatId or conversationId
    if not chat_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="id is required")

    try:
        stream = await orchestrator.resume_chat(identity, chat_id)
    except ChatNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    except ChatForbiddenError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    except StreamNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No streams found")

    if stream is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)


@router.delete("")
def delete_chat(
    id: Optional[str] = Query(None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Delete a chat with its messages and streams. Owner only."""
    if not id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if identity.is_guest:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    chat = chat_service.get_chat_by_id(db, id)
    if not chat:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if chat.user_id != identity.id:
        logger.warning(f"Chat delete by non-owner rejected: chat_id={id}, user_id={identity.id}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    deleted = ChatSummary.model_validate(chat).model_dump(mode="json")
    chat_service.delete_chat_by_id(db, id)
    return deleted


@router.get("/{chat_id}/messages", response_model=List[MessageResponse])
def get_chat_messages(
    chat_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Messages of a chat in persisted order. Private chats are owner only."""
    chat = chat_service.get_chat_by_id(db, chat_id)
    if not chat:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if not chat_service.can_read_chat(chat, identity.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return [MessageResponse.model_validate(message) for message in chat_service.get_messages_by_chat_id(db, chat_id)]


@router.patch("/{chat_id}/visibility", response_model=ChatSummary)
def update_visibility(
    chat_id: str,
    body: VisibilityUpdateRequest,
    user: AuthenticatedUser = Depends(require_authenticated_user),
    db: Session = Depends(get_db),
):
    """Change chat visibility. Owner only."""
    chat = chat_service.get_chat_by_id(db, chat_id)
    if not chat:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if chat.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return ChatSummary.model_validate(chat_service.update_chat_visibility(db, chat_id, body.visibility))
