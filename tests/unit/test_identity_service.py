"""Unit tests for the identity resolver and the telemetry collaborator."""
import re

import pytest

from progress_sync.schemas.identity_schemas import AuthUser, Identity, IdentityKind
from progress_sync.services.identity_service import (
    CURRENT_USER_KEY,
    GUEST_USER_KEY,
    IdentityResolver,
    new_guest_id,
)
from progress_sync.services.telemetry_service import ANALYTICS_KEY, LocalTelemetry, TelemetryEvent
from progress_sync.stores.local_store import LocalSnapshotStore


@pytest.mark.unit
class TestResolveIdentity:
    def test_creates_and_persists_guest(self, local_store):
        resolver = IdentityResolver(local_store)
        identity = resolver.resolve_identity()
        assert identity.kind == IdentityKind.GUEST
        assert identity.display_name == "Guest User"
        assert identity.organization == "Evaluating IFRS 17"
        assert local_store.get_json(GUEST_USER_KEY)["id"] == identity.id
        assert local_store.namespace == identity.id
        assert identity.created_at.tzinfo is not None

    def test_reuses_stored_guest(self, local_store):
        resolver = IdentityResolver(local_store)
        first = resolver.resolve_identity()
        second = IdentityResolver(local_store).resolve_identity()
        assert first.id == second.id

    def test_authenticated_user_wins(self, local_store):
        resolver = IdentityResolver(local_store)
        resolver.resolve_identity()
        identity = resolver.resolve_identity(AuthUser(id="user-9", email="bob@example.com"))
        assert identity.is_authenticated
        assert identity.id == "user-9"
        assert identity.display_name == "bob"
        assert local_store.get_json(CURRENT_USER_KEY)["id"] == "user-9"
        assert local_store.namespace == "user-9"

    def test_guest_flag_on_auth_user_is_treated_as_guest(self, local_store):
        identity = IdentityResolver(local_store).resolve_identity(AuthUser(id="x", is_guest=True))
        assert identity.is_guest

    def test_storage_failure_falls_back_to_ephemeral_guest(self, broken_storage):
        store = LocalSnapshotStore(broken_storage)
        identity = IdentityResolver(store).resolve_identity()
        assert identity.is_guest
        assert identity.ephemeral
        assert identity.id.startswith("guest_fallback_")

    def test_clear_guest_and_forget_user(self, local_store):
        resolver = IdentityResolver(local_store)
        resolver.resolve_identity()
        resolver.resolve_identity(AuthUser(id="user-9"))
        assert resolver.clear_guest()
        assert resolver.forget_current_user()
        assert resolver.get_guest() is None
        assert resolver.get_current_user() is None

    def test_invalid_stored_guest_is_replaced(self, local_store):
        local_store.set_json(GUEST_USER_KEY, {"id": 5})
        identity = IdentityResolver(local_store).resolve_identity()
        assert identity.is_guest
        assert not identity.ephemeral


@pytest.mark.unit
class TestIdentityModel:
    def test_guest_id_format(self):
        assert re.fullmatch(r"guest_\d+_[a-z0-9]{9}", new_guest_id())

    def test_display_name_fallback(self):
        assert Identity.from_auth_user(AuthUser(id="1", display_name="  Ann ")).display_name == "Ann"
        assert Identity.from_auth_user(AuthUser(id="1")).display_name == "Player"


@pytest.mark.unit
class TestLocalTelemetry:
    def test_keeps_only_the_tail(self, local_store):
        telemetry = LocalTelemetry(local_store, max_events=3)
        telemetry.bind_identity("guest_1")
        for i in range(5):
            telemetry.track(TelemetryEvent.MODULE_STARTED, {"module_id": i})
        events = telemetry.events()
        assert [e["module_id"] for e in events] == [2, 3, 4]
        assert all(e["identity_id"] == "guest_1" for e in events)
        assert local_store.get_json(ANALYTICS_KEY) == events

    def test_never_raises(self, broken_storage):
        telemetry = LocalTelemetry(LocalSnapshotStore(broken_storage))
        telemetry.track(TelemetryEvent.PROGRESS_RESET)
        assert telemetry.events() == []
