"""
Schemas package. Import from submodules or from this package.

Example:
    from progress_sync.schemas import ProgressSnapshot, Identity
    from progress_sync.schemas.record_schemas import ProgressRecord
"""

from progress_sync.schemas.identity_schemas import AuthUser, Identity, IdentityKind
from progress_sync.schemas.progress_schemas import (
    INITIAL_POWER_UPS,
    AnsweredQuestion,
    LastLocation,
    ProgressSnapshot,
    ResumeTarget,
    StoreResult,
    parse_question_key,
    question_key,
)
from progress_sync.schemas.record_schemas import (
    DeleteProgressResponse,
    LastLocationResponse,
    LastLocationUpdate,
    ProgressEventCreate,
    ProgressEventListResponse,
    ProgressEventResponse,
    ProgressRecord,
)
from progress_sync.schemas.session_schemas import (
    AnswerResult,
    AnswerStatus,
    MergeOutcome,
    MergeReport,
    ModuleStartResult,
    ModuleStartStatus,
    SessionPhase,
    SessionState,
)

__all__ = [
    # identity
    "AuthUser",
    "Identity",
    "IdentityKind",
    # progress
    "INITIAL_POWER_UPS",
    "AnsweredQuestion",
    "LastLocation",
    "ProgressSnapshot",
    "ResumeTarget",
    "StoreResult",
    "parse_question_key",
    "question_key",
    # remote records
    "DeleteProgressResponse",
    "LastLocationResponse",
    "LastLocationUpdate",
    "ProgressEventCreate",
    "ProgressEventListResponse",
    "ProgressEventResponse",
    "ProgressRecord",
    # session
    "AnswerResult",
    "AnswerStatus",
    "MergeOutcome",
    "MergeReport",
    "ModuleStartResult",
    "ModuleStartStatus",
    "SessionPhase",
    "SessionState",
]
