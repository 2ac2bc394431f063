from typing import Optional

from progress_sync.config import Settings, get_settings
from progress_sync.services.catalog_service import ContentCatalog
from progress_sync.services.identity_service import AuthProvider, IdentityResolver
from progress_sync.services.session_service import SessionOrchestrator
from progress_sync.services.telemetry_service import LocalTelemetry
from progress_sync.stores.device_storage import FileDeviceStorage
from progress_sync.stores.local_store import LocalSnapshotStore
from progress_sync.stores.remote_store import RemoteSnapshotStore


def build_orchestrator(
    settings: Optional[Settings] = None,
    auth_provider: Optional[AuthProvider] = None,
) -> SessionOrchestrator:
    settings = settings or get_settings()

    local_store = LocalSnapshotStore(FileDeviceStorage(settings.local_storage_path))
    remote_store = RemoteSnapshotStore(
        base_url=settings.remote_base_url,
        timeout=settings.remote_timeout_seconds,
    )
    telemetry = LocalTelemetry(local_store)

    return SessionOrchestrator(
        catalog=ContentCatalog.load(settings.catalog_path),
        local_store=local_store,
        remote_store=remote_store,
        identity_resolver=IdentityResolver(local_store, telemetry),
        auth_provider=auth_provider,
        telemetry=telemetry,
        settings=settings,
    )
