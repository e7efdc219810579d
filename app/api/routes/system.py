import logging
from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.db.session import SessionLocal
from app.llm.router import is_model_available
from app.services.stream_registry import get_stream_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["System"])


@router.get("/health")
def system_health():
    db_ok = True
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        db_ok = False

    return {
        "status": "ok",
        "database": "connected" if db_ok else "error",
        "model_provider": "configured" if is_model_available() else "missing",
        "resumable_streams": get_stream_registry() is not None,
        "api_version": "1.0.0",
        "service": "Infox Chat API"
    }
