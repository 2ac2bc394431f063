"""
Telemetry collaborator: fire-and-forget event tracking.

Tracking never blocks or fails the caller.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from progress_sync.stores.local_store import LocalSnapshotStore
from progress_sync.utils.common import utcnow
from progress_sync.utils.logger import configure_logging

logger = configure_logging()

ANALYTICS_KEY = "ifrs17_guest_analytics"
MAX_STORED_EVENTS = 100


class TelemetryEvent:
    GUEST_SESSION_STARTED = "guest_session_started"
    GUEST_USER_LOADED = "guest_user_loaded"
    GUEST_INITIALIZATION_ERROR = "guest_initialization_error"
    GUEST_PROGRESS_MERGED = "guest_progress_merged"
    GUEST_PROGRESS_DISCARDED = "guest_progress_discarded"
    GUEST_MIGRATION_FAILED = "guest_migration_failed"
    MODULE2_UNLOCKED_POST_AUTH = "module2_unlocked_post_auth"
    MODULE1_COMPLETED_GUEST = "module1_completed_guest"
    AUTH_PROMPT_SHOWN_AFTER_MODULE1 = "auth_prompt_shown_after_module1"
    AUTH_MODAL_TRIGGERED = "auth_modal_triggered"
    AUTHENTICATED_USER_LOADED = "authenticated_user_loaded"
    MODULE_STARTED = "module_started"
    MODULE_COMPLETED = "module_completed"
    RESUME_LOCATION_APPLIED = "resume_location_applied"
    RESUME_LOCATION_MISSING = "resume_location_missing"
    PROGRESS_RESET = "progress_reset"


class Telemetry(ABC):
    identity_id: Optional[str] = None

    @abstractmethod
    def track(self, event_name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Record an event. Must not raise."""
        pass

    def bind_identity(self, identity_id: Optional[str]) -> None:
        self.identity_id = identity_id


class NullTelemetry(Telemetry):
    def track(self, event_name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        return None


class LocalTelemetry(Telemetry):
    """
    Keeps the most recent events in device storage and writes them to the log.
    """

    def __init__(self, local_store: LocalSnapshotStore, max_events: int = MAX_STORED_EVENTS):
        self.local_store = local_store
        self.max_events = max_events

    def track(self, event_name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        try:
            event = {
                "timestamp": utcnow().isoformat(),
                "event": event_name,
                "identity_id": self.identity_id or "unknown",
                **(payload or {}),
            }
            events = self.local_store.get_json(ANALYTICS_KEY)
            if not isinstance(events, list):
                events = []
            events.append(event)
            # Keep only the tail to bound storage use
            if len(events) > self.max_events:
                events = events[-self.max_events:]
            self.local_store.set_json(ANALYTICS_KEY, events)
            logger.info("telemetry event=%s payload=%s", event_name, payload or {})
        except Exception as e:
            logger.warning("telemetry failed event=%s error=%s", event_name, e)

    def events(self) -> list[dict]:
        events = self.local_store.get_json(ANALYTICS_KEY)
        return events if isinstance(events, list) else []
