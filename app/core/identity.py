"""
Request identities.

Every request runs as exactly one Identity: an AuthenticatedUser backed by a
verified user row, or an ephemeral GuestIdentity. The variant type is the only
discriminator; the guest sentinel email is kept for display and logging.
"""
import time
import uuid
from dataclasses import dataclass
from typing import Union

from app.core.config import GUEST_EMAIL_DOMAIN


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str
    plan: str = "free"

    is_guest = False

    @property
    def user_type(self) -> str:
        return "regular"


@dataclass(frozen=True)
class GuestIdentity:
    id: str
    email: str
    fingerprint: str

    is_guest = True

    @property
    def user_type(self) -> str:
        return "guest"


Identity = Union[AuthenticatedUser, GuestIdentity]


def new_guest_identity(fingerprint: str) -> GuestIdentity:
    """
    Synthesize a guest for this request.

    The id is derived from the fingerprint so a guest can keep writing to the
    chats it created; nothing about the guest is stored.
    """
    return GuestIdentity(
        id=str(uuid.uuid5(uuid.NAMESPACE_URL, f"guest:{fingerprint}")),
        email=f"guest-{int(time.time() * 1000)}@{GUEST_EMAIL_DOMAIN}",
        fingerprint=fingerprint,
    )
