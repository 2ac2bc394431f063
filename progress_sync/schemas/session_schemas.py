"""
Session schemas: orchestrator phases, outcomes reported to the UI and the
read-only state view.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from progress_sync.schemas.identity_schemas import Identity
from progress_sync.schemas.progress_schemas import ProgressSnapshot, ResumeTarget


class SessionPhase(str, Enum):
    BOOTING = "booting"
    RESOLVING_IDENTITY = "resolving_identity"
    LOADING_PROGRESS = "loading_progress"
    RESUMING = "resuming"
    READY = "ready"
    MIGRATING = "migrating"
    RESETTING = "resetting"
    CLOSED = "closed"


class MergeOutcome(str, Enum):
    MIGRATED = "migrated"
    LOADED_EXISTING = "loaded-existing"
    FRESH = "fresh"


class AnswerStatus(str, Enum):
    RECORDED = "recorded"
    MODULE_COMPLETED = "module_completed"
    REJECTED = "rejected"


class AnswerResult(BaseModel):
    status: AnswerStatus
    was_correct: bool = False
    points: int = 0
    leveled_up: bool = False
    perfect_module: bool = False
    auth_prompt: bool = False  # guest finished the last guest-accessible module
    reason: Optional[str] = None


class ModuleStartStatus(str, Enum):
    STARTED = "started"
    AUTH_REQUIRED = "auth_required"
    LOCKED = "locked"
    REJECTED = "rejected"


class ModuleStartResult(BaseModel):
    status: ModuleStartStatus
    module_id: int
    reason: Optional[str] = None


class MergeReport(BaseModel):
    """What happened at the last guest-to-authenticated transition."""
    outcome: MergeOutcome
    guest_discarded: bool = False
    persisted: bool = True
    reason: str = ""


class SessionState(BaseModel):
    """Read-only observable state handed to the UI layer."""
    identity: Optional[Identity] = None
    progress: ProgressSnapshot
    resume_target: Optional[ResumeTarget] = None
    is_booting: bool = True
    phase: SessionPhase = SessionPhase.BOOTING
    last_merge: Optional[MergeReport] = None
    persistence_warning: Optional[str] = None
