"""
Model router: maps client model ids to provider models.
"""
import logging
from app.core.config import OPENAI_API_KEY, DEFAULT_CHAT_MODEL, REASONING_CHAT_MODEL, TITLE_MODEL

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "chat-model"
REASONING_MODEL_ID = "chat-model-reasoning"

# Client model id -> provider model
MODEL_ROUTING = {
    DEFAULT_MODEL_ID: DEFAULT_CHAT_MODEL,
    REASONING_MODEL_ID: REASONING_CHAT_MODEL,
    "gpt-4o-mini": "gpt-4o-mini",
    "title-model": TITLE_MODEL,
}

REASONING_MODEL_IDS = {REASONING_MODEL_ID}


def get_model(model_id: str) -> str:
    """
    Get the provider model for a client model id.

    Args:
        model_id: Client-facing id (e.g., "chat-model", "chat-model-reasoning")

    Returns:
        Provider model identifier; unknown ids fall back to the default model
    """
    model = MODEL_ROUTING.get(model_id)
    if model is None:
        logger.debug(f"Unknown model id {model_id!r}, using {DEFAULT_CHAT_MODEL}")
        return DEFAULT_CHAT_MODEL
    return model


def is_reasoning_model(model_id: str) -> bool:
    """Reasoning models run without tools."""
    return model_id in REASONING_MODEL_IDS


def is_model_available() -> bool:
    """Check if model is available (OpenAI configured)."""
    return bool(OPENAI_API_KEY)
