"""
Progress merge engine.

Pure functions only: given a guest snapshot and the remote snapshot of the
now-authenticated user, decide which one to adopt. Storage I/O and clearing of
guest data happen in the orchestrator, driven by the returned MergeResult.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from progress_sync.config import MergePolicy
from progress_sync.schemas.identity_schemas import IdentityKind
from progress_sync.schemas.progress_schemas import ProgressSnapshot, parse_question_key
from progress_sync.schemas.session_schemas import MergeOutcome
from progress_sync.services.catalog_service import ContentCatalog
from progress_sync.utils.common import clamp, ensure_utc, iso_format, utcnow
from progress_sync.utils.logger import configure_logging

logger = configure_logging()

DEFAULT_GUEST_ACCESSIBLE = (0,)
DEFAULT_AUTHENTICATED_MIN_UNLOCKED = (0, 1)


@dataclass(frozen=True)
class MergeResult:
    """Snapshot to adopt plus which branch produced it."""
    snapshot: ProgressSnapshot
    outcome: MergeOutcome
    guest_consumed: bool  # a guest snapshot was present and has been accounted for
    guest_discarded: bool  # that guest snapshot lost against the remote record
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def fresh_snapshot(unlocked: Iterable[int] = (0,)) -> ProgressSnapshot:
    return ProgressSnapshot(unlocked_modules=frozenset(unlocked) or frozenset({0}))


def summarize(snapshot: Optional[ProgressSnapshot]) -> Dict[str, Any]:
    """Short audit summary of a snapshot (for logs and audit events)."""
    if snapshot is None:
        return {"present": False}
    return {
        "present": True,
        "current_module": snapshot.current_module,
        "current_question": snapshot.current_question,
        "score": snapshot.score,
        "level": snapshot.level,
        "completed_modules": sorted(snapshot.completed_modules),
        "unlocked_modules": sorted(snapshot.unlocked_modules),
        "answered": len(snapshot.answered_questions),
        "last_updated": iso_format(snapshot.last_updated) if snapshot.last_updated else None,
    }


def _progress_rank(snapshot: ProgressSnapshot) -> tuple[int, int, int]:
    return len(snapshot.completed_modules), snapshot.score, len(snapshot.answered_questions)


def merge(
    guest: Optional[ProgressSnapshot],
    remote: Optional[ProgressSnapshot],
    *,
    policy: MergePolicy = MergePolicy.MOST_PROGRESS,
    authenticated_min_unlocked: Iterable[int] = DEFAULT_AUTHENTICATED_MIN_UNLOCKED,
    guest_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MergeResult:
    """
    Reconcile guest and remote progress.

    1. only guest   -> guest verbatim, unlocked widened to the authenticated minimum ("migrated")
    2. only remote  -> remote verbatim ("loaded-existing")
    3. both         -> resolved by `policy`; the loser is reported, never silently dropped
    4. neither      -> fresh snapshot ("fresh")
    """
    min_unlocked = frozenset(authenticated_min_unlocked)
    now = now or utcnow()
    migration_meta = {
        "migrated_from_guest": True,
        "original_guest_id": guest_id,
        "migration_timestamp": iso_format(now),
    }

    if guest is not None and remote is None:
        snapshot = guest.model_copy(update={"unlocked_modules": guest.unlocked_modules | min_unlocked})
        return MergeResult(
            snapshot=snapshot,
            outcome=MergeOutcome.MIGRATED,
            guest_consumed=True,
            guest_discarded=False,
            reason="no remote record; guest progress migrated",
            metadata=migration_meta,
        )

    if guest is None and remote is not None:
        return MergeResult(
            snapshot=remote,
            outcome=MergeOutcome.LOADED_EXISTING,
            guest_consumed=False,
            guest_discarded=False,
            reason="no guest progress to migrate; loaded authenticated progress",
        )

    if guest is None and remote is None:
        return MergeResult(
            snapshot=fresh_snapshot(min_unlocked or {0}),
            outcome=MergeOutcome.FRESH,
            guest_consumed=False,
            guest_discarded=False,
            reason="no progress anywhere; starting fresh",
        )

    # Both present: the ambiguous case. Resolution is policy-driven and logged.
    logger.warning(
        "merge ambiguity policy=%s guest=%s remote=%s",
        policy.value,
        summarize(guest),
        summarize(remote),
    )

    if policy == MergePolicy.MOST_PROGRESS and _progress_rank(guest) > _progress_rank(remote):
        snapshot = guest.model_copy(
            update={
                "unlocked_modules": guest.unlocked_modules | remote.unlocked_modules | min_unlocked,
                "completed_modules": guest.completed_modules | remote.completed_modules,
                "achievements": guest.achievements | remote.achievements,
            }
        )
        return MergeResult(
            snapshot=snapshot,
            outcome=MergeOutcome.MIGRATED,
            guest_consumed=True,
            guest_discarded=False,
            reason="guest progress ahead of remote record; guest kept",
            metadata={**migration_meta, "replaced_remote": summarize(remote)},
        )

    return MergeResult(
        snapshot=remote,
        outcome=MergeOutcome.LOADED_EXISTING,
        guest_consumed=True,
        guest_discarded=True,
        reason="remote record exists; guest progress discarded",
        metadata={"discarded_guest": summarize(guest), "original_guest_id": guest_id},
    )


def sanitize_snapshot(
    snapshot: ProgressSnapshot,
    catalog: ContentCatalog,
    kind: IdentityKind,
    *,
    guest_accessible: Iterable[int] = DEFAULT_GUEST_ACCESSIBLE,
    authenticated_min_unlocked: Iterable[int] = DEFAULT_AUTHENTICATED_MIN_UNLOCKED,
) -> ProgressSnapshot:
    """
    Repair the invariants of a loaded snapshot against the catalog and access rules.

    Never raises; out-of-range data is dropped or clamped.
    """
    module_count = catalog.module_count
    if module_count == 0:
        return snapshot

    completed = frozenset(m for m in snapshot.completed_modules if catalog.has_module(m))
    unlocked = frozenset(m for m in snapshot.unlocked_modules if catalog.has_module(m)) | completed

    if kind == IdentityKind.GUEST:
        allowed = frozenset(m for m in guest_accessible if catalog.has_module(m)) or frozenset({0})
        unlocked = (unlocked & allowed) or frozenset({min(allowed)})
        completed = completed & unlocked
    else:
        unlocked = unlocked | frozenset(m for m in authenticated_min_unlocked if catalog.has_module(m))
    if not unlocked:
        unlocked = frozenset({0})

    answered = {}
    for key, entry in snapshot.answered_questions.items():
        parsed = parse_question_key(key)
        if parsed is not None and catalog.has_question(*parsed):
            answered[key] = entry

    orders = {
        m: list(order)
        for m, order in snapshot.shuffled_question_order.items()
        if catalog.has_module(m) and catalog.is_valid_order(m, order)
    }

    current_module = clamp(snapshot.current_module, 0, module_count - 1)
    current_question = clamp(snapshot.current_question, 0, catalog.question_count(current_module) - 1)

    return snapshot.model_copy(
        update={
            "completed_modules": completed,
            "unlocked_modules": unlocked,
            "answered_questions": answered,
            "shuffled_question_order": orders,
            "current_module": current_module,
            "current_question": current_question,
            "power_ups": {k: max(0, int(v)) for k, v in snapshot.power_ups.items()},
            "last_updated": ensure_utc(snapshot.last_updated),
        }
    )
