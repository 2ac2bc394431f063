"""
Identity schemas: who the active session belongs to.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from progress_sync.utils.common import utcnow


class IdentityKind(str, Enum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class AuthUser(BaseModel):
    """User as handed over by the external auth collaborator."""
    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    organization: Optional[str] = None
    country: Optional[str] = None
    gender: Optional[str] = None
    is_guest: bool = False


class Identity(BaseModel):
    """Exactly one identity is active per session."""
    id: str
    kind: IdentityKind
    display_name: str = "Guest User"
    email: Optional[str] = None
    organization: Optional[str] = None
    country: Optional[str] = None
    gender: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    ephemeral: bool = False  # in-memory fallback; progress does not survive a reload

    @property
    def is_guest(self) -> bool:
        return self.kind == IdentityKind.GUEST

    @property
    def is_authenticated(self) -> bool:
        return self.kind == IdentityKind.AUTHENTICATED

    @classmethod
    def from_auth_user(cls, user: AuthUser) -> "Identity":
        name = user.display_name
        if not (isinstance(name, str) and name.strip()):
            # fallback: email prefix
            name = user.email.split("@", 1)[0] if user.email else "Player"
        return cls(
            id=user.id,
            kind=IdentityKind.AUTHENTICATED,
            display_name=name.strip(),
            email=user.email,
            organization=user.organization,
            country=user.country,
            gender=user.gender,
        )
