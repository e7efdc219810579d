"""
Chat history endpoints.

Paginated list of the authenticated user's chats, newest first.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, require_authenticated_user
from app.core.identity import AuthenticatedUser
from app.schemas.chat import ChatSummary
from app.schemas.history import HistoryListResponse
from app.services.chat_service import get_chats_by_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/history", tags=["History"])


@router.get("", status_code=status.HTTP_200_OK, response_model=HistoryListResponse)
def get_history(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    user: AuthenticatedUser = Depends(require_authenticated_user),
    db: Session = Depends(get_db)
):
    """
    Get the chat list for the authenticated user.
    """
    try:
        chats, total = get_chats_by_user_id(db, user.id, page=page, page_size=page_size)
        logger.debug(f"History listed: user_id={user.id}, total={total}, page={page}")

        return HistoryListResponse(
            chats=[ChatSummary.model_validate(chat) for chat in chats],
            total=total,
            page=page,
            page_size=page_size,
            hasMore=page * page_size < total,
        )

    except Exception as e:
        logger.error(f"Failed to get history: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get history"
        )
