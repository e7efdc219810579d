"""
Request origin helpers and the rolling daily message cap.
"""
import logging
from fastapi import Request, HTTPException, status
from sqlalchemy.orm import Session

from app.core.identity import Identity
from app.core.plan_limits import MAX_MESSAGES_PER_DAY
from app.services.chat_service import count_user_messages

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request."""
    # Check for forwarded IP (from proxy/load balancer)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP in the chain
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return "unknown"


def fingerprint_hash(identifier: str) -> int:
    """31-multiplier string hash wrapped to a signed 32-bit integer."""
    value = 0
    for char in identifier:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def get_guest_fingerprint(request: Request) -> str:
    """
    Derive the low-assurance guest key from client address and user agent.

    Collisions and spoofing are tolerated; this only deduplicates guest usage.
    """
    user_agent = request.headers.get("User-Agent") or "unknown"
    identifier = f"{get_client_ip(request)}_{user_agent}"
    return f"guest_{abs(fingerprint_hash(identifier))}"


def enforce_message_cap(db: Session, identity: Identity) -> None:
    """
    Enforce the rolling 24h message cap for the identity's user type.

    Raises:
        HTTPException: 429 when the identity sent more messages than allowed
    """
    limit = MAX_MESSAGES_PER_DAY[identity.user_type]
    message_count = count_user_messages(db, identity.id, hours=24)

    if message_count > limit:
        logger.warning(
            f"Message cap exceeded: user_id={identity.id}, user_type={identity.user_type}, "
            f"count={message_count}, limit={limit}"
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="You have exceeded your maximum number of messages for the day! Please try again later."
        )
