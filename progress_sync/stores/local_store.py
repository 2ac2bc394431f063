"""
Local snapshot store: progress snapshot and last-location pointer on device
storage, namespaced per identity.

Every operation is synchronous and best-effort. Nothing here raises to the
caller: failures are logged and reported as False / None.
"""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from progress_sync.errors import LocalStorageUnavailable
from progress_sync.schemas.progress_schemas import LastLocation, ProgressSnapshot
from progress_sync.stores.device_storage import DeviceStorage
from progress_sync.utils.common import ensure_utc, utcnow
from progress_sync.utils.logger import configure_logging

logger = configure_logging()

PROGRESS_KEY_PREFIX = "ifrs17-progress"
LAST_LOCATION_KEY_PREFIX = "ifrs17-last-location"


class LocalSnapshotStore:
    def __init__(self, storage: DeviceStorage):
        self.storage = storage
        self.namespace: Optional[str] = None
        # False after the last storage call failed; the session is memory-only then.
        self.available = True

    # ----- namespace -----
    def use_namespace(self, identity_id: Optional[str]) -> None:
        self.namespace = identity_id

    def _ns(self, identity_id: Optional[str]) -> Optional[str]:
        return identity_id if identity_id is not None else self.namespace

    @staticmethod
    def progress_key(identity_id: Optional[str]) -> str:
        return f"{PROGRESS_KEY_PREFIX}-{identity_id}" if identity_id else PROGRESS_KEY_PREFIX

    @staticmethod
    def last_location_key(identity_id: Optional[str]) -> str:
        return f"{LAST_LOCATION_KEY_PREFIX}-{identity_id}" if identity_id else LAST_LOCATION_KEY_PREFIX

    # ----- raw JSON helpers (shared with identity and telemetry) -----
    def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = self.storage.get_item(key)
            self.available = True
        except (LocalStorageUnavailable, OSError) as e:
            self.available = False
            logger.error("local storage read failed key=%s error=%s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("local storage value is not JSON key=%s; ignoring", key)
            return None

    def set_json(self, key: str, value: Any) -> bool:
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error("local storage value not serializable key=%s error=%s", key, e)
            return False
        try:
            self.storage.set_item(key, raw)
            self.available = True
            return True
        except (LocalStorageUnavailable, OSError) as e:
            self.available = False
            logger.error("local storage write failed key=%s error=%s", key, e)
            return False

    def remove(self, key: str) -> bool:
        try:
            self.storage.remove_item(key)
            self.available = True
            return True
        except (LocalStorageUnavailable, OSError) as e:
            self.available = False
            logger.error("local storage remove failed key=%s error=%s", key, e)
            return False

    # ----- snapshot -----
    def save(self, identity_id: Optional[str], snapshot: ProgressSnapshot) -> bool:
        ok = self.set_json(self.progress_key(self._ns(identity_id)), snapshot.model_dump(mode="json"))
        if ok:
            logger.debug("progress saved locally identity=%s", self._ns(identity_id))
        return ok

    def load(self, identity_id: Optional[str] = None) -> Optional[ProgressSnapshot]:
        key = self.progress_key(self._ns(identity_id))
        data = self.get_json(key)
        if data is None:
            return None
        try:
            return ProgressSnapshot.model_validate(data)
        except ValidationError as e:
            logger.warning("stored snapshot invalid key=%s errors=%s", key, e.error_count())
            return None

    def clear(self, identity_id: Optional[str] = None) -> bool:
        return self.remove(self.progress_key(self._ns(identity_id)))

    # ----- last location -----
    def set_last_location(
        self,
        identity_id: Optional[str],
        module_id: int,
        question_index: int,
        ts: Optional[datetime] = None,
    ) -> bool:
        stamp = ensure_utc(ts) if isinstance(ts, datetime) else None
        payload = {
            "module_id": module_id if isinstance(module_id, int) else 0,
            "question_index": question_index if isinstance(question_index, int) else 0,
            "ts": (stamp or utcnow()).isoformat(),
        }
        return self.set_json(self.last_location_key(self._ns(identity_id)), payload)

    def get_last_location(self, identity_id: Optional[str] = None) -> Optional[LastLocation]:
        key = self.last_location_key(self._ns(identity_id))
        data = self.get_json(key)
        if not isinstance(data, dict):
            return None
        try:
            loc = LastLocation.model_validate(data)
        except ValidationError:
            logger.warning("stored last location invalid key=%s", key)
            return None
        return loc.model_copy(update={"ts": ensure_utc(loc.ts), "source": "local"})

    def clear_last_location(self, identity_id: Optional[str] = None) -> bool:
        return self.remove(self.last_location_key(self._ns(identity_id)))
