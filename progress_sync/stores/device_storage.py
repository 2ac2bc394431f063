"""
On-device key/value storage (the Python counterpart of browser localStorage).

Values are strings; callers serialize JSON themselves. Backends raise
LocalStorageUnavailable when the medium cannot be read or written.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from progress_sync.errors import LocalStorageUnavailable


class DeviceStorage(ABC):
    """Key/value storage interface."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        pass


class MemoryDeviceStorage(DeviceStorage):
    """Process-local storage. Used by tests and when no disk is available."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class FileDeviceStorage(DeviceStorage):
    """
    Single JSON document on disk holding every key.

    Writes go to a temp file in the same directory and replace the target, so
    a crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._items: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        if self._items is not None:
            return self._items
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._items = {}
            return self._items
        except UnicodeDecodeError:
            # Not text at all; treated like a corrupt document below.
            raw = ""
        except OSError as e:
            raise LocalStorageUnavailable(f"cannot read {self.path}: {e}") from e
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            # Corrupt document: start over rather than block the session.
            data = {}
        self._items = {str(k): v for k, v in data.items() if isinstance(v, str)} if isinstance(data, dict) else {}
        return self._items

    def _flush(self, items: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".storage-", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f)
            os.replace(tmp, self.path)
        except OSError as e:
            raise LocalStorageUnavailable(f"cannot write {self.path}: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = dict(self._load())
        items[key] = value
        self._flush(items)
        self._items = items

    def remove_item(self, key: str) -> None:
        items = dict(self._load())
        if key not in items:
            return
        del items[key]
        self._flush(items)
        self._items = items

    def keys(self) -> list[str]:
        return list(self._load())
