"""
Remote snapshot store: async client of the remote record service.

Writes report failures as StoreResult; reads raise RemoteStoreError so the
caller can tell "no record" (None) apart from "could not ask". The store does
not serialize overlapping calls for the same user; the orchestrator does.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from progress_sync.errors import RemoteStoreError
from progress_sync.schemas.progress_schemas import LastLocation, ProgressSnapshot, StoreResult
from progress_sync.schemas.record_schemas import (
    LastLocationResponse,
    LastLocationUpdate,
    ProgressEventCreate,
    ProgressEventListResponse,
    ProgressEventResponse,
    ProgressRecord,
)
from progress_sync.utils.common import ensure_utc
from progress_sync.utils.logger import configure_logging, log_request

logger = configure_logging()


class RemoteSnapshotStore:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _path(user_id: str, suffix: str = "") -> str:
        return f"/progress/{quote(str(user_id), safe='')}{suffix}"

    async def _write(self, name: str, method: str, url: str, body: Optional[Dict[str, Any]] = None) -> StoreResult:
        try:
            with log_request(logger, name):
                response = await self._client.request(method, url, json=body)
        except httpx.HTTPError as e:
            return StoreResult.failed(f"{type(e).__name__}: {e}")
        if response.status_code >= 400:
            logger.warning("%s rejected status=%s body=%s", name, response.status_code, response.text[:200])
            return StoreResult.failed(f"HTTP {response.status_code}")
        return StoreResult.ok()

    async def _read(self, name: str, url: str) -> Optional[Dict[str, Any]]:
        try:
            with log_request(logger, name):
                response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"{name} failed: {type(e).__name__}: {e}") from e
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise RemoteStoreError(f"{name} failed: HTTP {response.status_code}", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise RemoteStoreError(f"{name} returned invalid JSON") from e

    # ----- snapshot -----
    async def save(self, user_id: str, snapshot: ProgressSnapshot) -> StoreResult:
        """Upsert keyed by user id; safe to repeat."""
        record = ProgressRecord.from_snapshot(snapshot)
        return await self._write("remote.save", "PUT", self._path(user_id), record.model_dump(mode="json"))

    async def load(self, user_id: str) -> Optional[ProgressSnapshot]:
        data = await self._read("remote.load", self._path(user_id))
        if data is None:
            return None
        try:
            snapshot = ProgressRecord.model_validate(data).to_snapshot()
        except ValidationError as e:
            raise RemoteStoreError(f"remote.load returned an invalid record: {e.error_count()} errors") from e
        return snapshot.model_copy(update={"last_updated": ensure_utc(snapshot.last_updated)})

    async def clear(self, user_id: str) -> StoreResult:
        return await self._write("remote.clear", "DELETE", self._path(user_id))

    # ----- last location -----
    async def set_last_location(self, user_id: str, module_id: int, question_index: int) -> StoreResult:
        body = LastLocationUpdate(module_id=module_id or 0, question_index=question_index or 0)
        return await self._write(
            "remote.set_last_location", "PATCH", self._path(user_id, "/last-location"), body.model_dump()
        )

    async def get_last_location(self, user_id: str) -> Optional[LastLocation]:
        data = await self._read("remote.get_last_location", self._path(user_id, "/last-location"))
        if data is None:
            return None
        try:
            loc = LastLocationResponse.model_validate(data)
        except ValidationError as e:
            raise RemoteStoreError("remote.get_last_location returned an invalid pointer") from e
        return LastLocation(
            module_id=loc.module_id,
            question_index=loc.question_index,
            ts=ensure_utc(loc.ts),
            source="remote",
        )

    # ----- audit log -----
    async def record_event(
        self,
        user_id: str,
        event_type: str,
        module_id: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> StoreResult:
        body = ProgressEventCreate(event_type=event_type, module_id=module_id, payload=payload or {})
        return await self._write("remote.record_event", "POST", self._path(user_id, "/events"), body.model_dump(mode="json"))

    async def list_events(self, user_id: str) -> list[ProgressEventResponse]:
        data = await self._read("remote.list_events", self._path(user_id, "/events"))
        if data is None:
            return []
        try:
            return ProgressEventListResponse.model_validate(data).events
        except ValidationError as e:
            raise RemoteStoreError("remote.list_events returned an invalid event list") from e
