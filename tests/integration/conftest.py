"""
Integration test fixtures. Overrides get_db with an in-memory DB and talks to
the record service over httpx's ASGI transport (no sockets).
"""
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.orm import sessionmaker

from progress_sync.schemas.identity_schemas import AuthUser
from progress_sync.services.identity_service import AuthProvider


@pytest.fixture
def override_get_db(in_memory_engine):
    """Session factory over the shared in-memory engine."""
    import progress_sync.models  # noqa: F401
    from progress_sync.config import Base
    Base.metadata.create_all(in_memory_engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=in_memory_engine)

    def _get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    return _get_db


@pytest.fixture
def app(override_get_db):
    from progress_sync.api import app
    from progress_sync.config import get_db
    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def api_client(app):
    """FastAPI TestClient with in-memory DB override."""
    from fastapi.testclient import TestClient
    with TestClient(app) as client:
        yield client


@pytest_asyncio.fixture
async def remote_store(app):
    from progress_sync.stores.remote_store import RemoteSnapshotStore
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    store = RemoteSnapshotStore(client=client)
    yield store
    await client.aclose()


@pytest_asyncio.fixture
async def offline_remote_store():
    """Remote store whose every request fails at the transport level."""
    from progress_sync.stores.remote_store import RemoteSnapshotStore

    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network unreachable", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_handler), base_url="http://test")
    yield RemoteSnapshotStore(client=client)
    await client.aclose()


class SwitchableTransport(httpx.AsyncBaseTransport):
    """ASGI transport to the record service that fails to connect while `online` is False."""

    def __init__(self, app):
        self.inner = httpx.ASGITransport(app=app)
        self.online = False
        self.failed_requests = 0

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if not self.online:
            self.failed_requests += 1
            raise httpx.ConnectError("network unreachable", request=request)
        return await self.inner.handle_async_request(request)


@pytest.fixture
def switchable_transport(app):
    return SwitchableTransport(app)


@pytest_asyncio.fixture
async def flaky_remote_store(switchable_transport):
    """Remote store that starts offline; set `switchable_transport.online` to bring it back."""
    from progress_sync.stores.remote_store import RemoteSnapshotStore
    client = httpx.AsyncClient(transport=switchable_transport, base_url="http://test")
    yield RemoteSnapshotStore(client=client)
    await client.aclose()


@pytest_asyncio.fixture
async def fixed_response_remote_store():
    """Factory for remote stores whose GETs answer with a canned JSON body."""
    from progress_sync.stores.remote_store import RemoteSnapshotStore

    clients = []

    def _make(body: dict) -> RemoteSnapshotStore:
        def _handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET" and request.url.path.endswith("/last-location"):
                return httpx.Response(404, json={"detail": "not found"})
            if request.method == "GET":
                return httpx.Response(200, json=body)
            return httpx.Response(200, json={})

        client = httpx.AsyncClient(transport=httpx.MockTransport(_handler), base_url="http://test")
        clients.append(client)
        return RemoteSnapshotStore(client=client)

    yield _make
    for client in clients:
        await client.aclose()


class StubAuthProvider(AuthProvider):
    def __init__(self, user: Optional[AuthUser] = None):
        self.user = user
        self.sign_out_calls = 0

    async def get_current_authenticated_user(self) -> Optional[AuthUser]:
        return self.user

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self.user = None


@pytest.fixture
def auth_user():
    return AuthUser(id="user-123", display_name="Alice", email="alice@example.com")


@pytest.fixture
def make_orchestrator(simple_catalog, remote_store):
    """Build orchestrators sharing one remote service; pass `storage` to simulate a reload."""
    import random

    from progress_sync.config import Settings
    from progress_sync.services.identity_service import IdentityResolver
    from progress_sync.services.session_service import SessionOrchestrator
    from progress_sync.services.telemetry_service import LocalTelemetry
    from progress_sync.stores.device_storage import MemoryDeviceStorage
    from progress_sync.stores.local_store import LocalSnapshotStore

    def _make(storage=None, *, remote=None, auth_provider=None, catalog=None, **overrides):
        overrides.setdefault("autosave_interval_seconds", 0)
        settings = Settings(**overrides)
        local = LocalSnapshotStore(storage if storage is not None else MemoryDeviceStorage())
        telemetry = LocalTelemetry(local)
        return SessionOrchestrator(
            catalog=catalog or simple_catalog,
            local_store=local,
            remote_store=remote or remote_store,
            identity_resolver=IdentityResolver(local, telemetry),
            auth_provider=auth_provider or StubAuthProvider(),
            telemetry=telemetry,
            settings=settings,
            rng=random.Random(7),
        )

    return _make


@pytest.fixture
def stub_auth():
    """The stub auth provider class; instantiate with the user it should report."""
    return StubAuthProvider
