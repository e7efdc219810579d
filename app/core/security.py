import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from app.core.config import SECRET_KEY, ALGORITHM

logger = logging.getLogger(__name__)


def create_access_token(data: dict, expires_delta: timedelta = None):
    """Issue a session token. Used by the auth provider bridge and by tests."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """
    Decode and verify a session token.

    Args:
        token: Encoded JWT

    Returns:
        Claims dict, or None when the token is invalid or expired
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected session token: {e}")
        return None
