from typing import Optional
from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.identity import Identity, AuthenticatedUser, new_guest_identity
from app.core.rate_limit import get_guest_fingerprint
from app.core.security import decode_access_token
from app.db.session import SessionLocal
from app.db.models.user import User
from app.services.subscription_service import get_plan_for_user

# Tokens are issued by the auth provider; a missing token is the guest path
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Session factory for work that outlives the request (streamed turns)."""
    return SessionLocal


def get_verified_user(db: Session, token: Optional[str]) -> Optional[User]:
    """Return the user row behind a valid token, or None."""
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload:
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    return db.query(User).filter(or_(User.id == subject, User.email == subject)).first()


def resolve_identity(request: Request, token: Optional[str], db: Session) -> Identity:
    """
    Resolve the identity a request runs as.

    Never raises: an absent, invalid or unknown token is the guest path.

    Args:
        request: Incoming request (fingerprint source for guests)
        token: Bearer token, if any
        db: Database session

    Returns:
        AuthenticatedUser for a verified user, GuestIdentity otherwise
    """
    user = get_verified_user(db, token)
    if user is not None:
        return AuthenticatedUser(id=user.id, email=user.email, plan=get_plan_for_user(db, user.id))
    return new_guest_identity(get_guest_fingerprint(request))


def get_current_identity(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Identity:
    return resolve_identity(request, token, db)


def require_authenticated_user(identity: Identity = Depends(get_current_identity)) -> AuthenticatedUser:
    """Strict variant for owner-only routes."""
    if identity.is_guest:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return identity
