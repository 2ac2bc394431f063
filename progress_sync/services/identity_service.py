"""
Identity resolution: guest (device-local) or authenticated (server-known).
"""

import random
import string
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from progress_sync.errors import IdentityResolutionError
from progress_sync.schemas.identity_schemas import AuthUser, Identity, IdentityKind
from progress_sync.services.telemetry_service import NullTelemetry, Telemetry, TelemetryEvent
from progress_sync.stores.local_store import LocalSnapshotStore
from progress_sync.utils.common import epoch_ms
from progress_sync.utils.logger import configure_logging

logger = configure_logging()

GUEST_USER_KEY = "kb.guest.id"
CURRENT_USER_KEY = "kb.current.user"

_ID_ALPHABET = string.ascii_lowercase + string.digits


class AuthProvider(ABC):
    """External auth collaborator. Sign-in/sign-up happen outside the sync engine."""

    @abstractmethod
    async def get_current_authenticated_user(self) -> Optional[AuthUser]:
        pass

    async def sign_out(self) -> None:
        return None


class NullAuthProvider(AuthProvider):
    async def get_current_authenticated_user(self) -> Optional[AuthUser]:
        return None


def new_guest_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"guest_{epoch_ms()}_{suffix}"


class IdentityResolver:
    def __init__(self, local_store: LocalSnapshotStore, telemetry: Optional[Telemetry] = None):
        self.local_store = local_store
        self.telemetry = telemetry or NullTelemetry()

    def resolve_identity(self, external_auth_user: Optional[AuthUser] = None) -> Identity:
        """
        Return the identity for this session and point the local store at its namespace.

        Never raises: if the stored guest cannot be loaded or created, an in-memory
        guest is returned whose progress will not survive a reload.
        """
        try:
            if external_auth_user is not None and not external_auth_user.is_guest:
                identity = Identity.from_auth_user(external_auth_user)
                self.local_store.set_json(CURRENT_USER_KEY, identity.model_dump(mode="json"))
                self.telemetry.track(TelemetryEvent.AUTHENTICATED_USER_LOADED, {"user_id": identity.id})
            else:
                identity = self._load_or_create_guest()
        except Exception as e:
            identity = self._fallback_guest(e)

        self.local_store.use_namespace(identity.id)
        return identity

    def _load_or_create_guest(self) -> Identity:
        stored = self.get_guest()
        if stored is not None:
            logger.info("reusing guest identity id=%s", stored.id)
            self.telemetry.track(TelemetryEvent.GUEST_USER_LOADED, {"guest_id": stored.id})
            return stored

        guest = Identity(
            id=new_guest_id(),
            kind=IdentityKind.GUEST,
            display_name="Guest User",
            organization="Evaluating IFRS 17",
            country="Unknown",
        )
        if not self.local_store.set_json(GUEST_USER_KEY, guest.model_dump(mode="json")):
            raise IdentityResolutionError("guest identity could not be persisted")
        logger.info("created guest identity id=%s", guest.id)
        self.telemetry.track(TelemetryEvent.GUEST_SESSION_STARTED, {"guest_id": guest.id})
        return guest

    def _fallback_guest(self, error: Exception) -> Identity:
        guest = Identity(
            id=f"guest_fallback_{epoch_ms()}",
            kind=IdentityKind.GUEST,
            display_name="Guest User",
            ephemeral=True,
        )
        logger.warning(
            "identity resolution failed (%s); using in-memory guest id=%s, progress will not survive a reload",
            error,
            guest.id,
        )
        self.telemetry.track(
            TelemetryEvent.GUEST_INITIALIZATION_ERROR,
            {"error": str(error), "fallback_used": True},
        )
        return guest

    def get_guest(self) -> Optional[Identity]:
        data = self.local_store.get_json(GUEST_USER_KEY)
        if not isinstance(data, dict):
            return None
        try:
            identity = Identity.model_validate(data)
        except ValidationError:
            logger.warning("stored guest identity invalid; ignoring")
            return None
        return identity if identity.is_guest else None

    def get_current_user(self) -> Optional[Identity]:
        data = self.local_store.get_json(CURRENT_USER_KEY)
        if not isinstance(data, dict):
            return None
        try:
            return Identity.model_validate(data)
        except ValidationError:
            return None

    def clear_guest(self) -> bool:
        """Destroy the stored guest identity once its progress has been migrated."""
        return self.local_store.remove(GUEST_USER_KEY)

    def forget_current_user(self) -> bool:
        return self.local_store.remove(CURRENT_USER_KEY)
