"""
Unit test fixtures. No database and no HTTP; stores use memory storage.
"""
import pytest

from progress_sync.schemas.identity_schemas import Identity, IdentityKind


@pytest.fixture
def guest_identity():
    return Identity(id="guest_1700000000000_abcdefghi", kind=IdentityKind.GUEST)


@pytest.fixture
def auth_identity():
    return Identity(id="user-123", kind=IdentityKind.AUTHENTICATED, display_name="Alice", email="alice@example.com")
