from progress_sync.stores.device_storage import DeviceStorage, FileDeviceStorage, MemoryDeviceStorage
from progress_sync.stores.local_store import LocalSnapshotStore
from progress_sync.stores.remote_store import RemoteSnapshotStore

__all__ = [
    "DeviceStorage",
    "FileDeviceStorage",
    "MemoryDeviceStorage",
    "LocalSnapshotStore",
    "RemoteSnapshotStore",
]
