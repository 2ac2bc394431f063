"""
Resume locator: one safe (module, question) pointer to resume at.

`locate` is pure and idempotent given its inputs, and never raises.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from progress_sync.schemas.identity_schemas import Identity
from progress_sync.schemas.progress_schemas import LastLocation, ProgressSnapshot, ResumeTarget
from progress_sync.services.catalog_service import ContentCatalog
from progress_sync.utils.common import clamp, ensure_utc
from progress_sync.utils.logger import configure_logging

logger = configure_logging()

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ResumeResult:
    target: ResumeTarget
    unlocked_modules: frozenset[int]  # possibly widened for authenticated identities
    source: str = "default"  # remote | local | snapshot | default
    widened: bool = False
    fell_back: bool = False  # guest pointer pointed outside the guest's unlocked modules


def pick_newest(*locations: Optional[LastLocation]) -> Optional[LastLocation]:
    """Freshest pointer by timestamp; pointers without a timestamp sort oldest. Ties keep argument order."""
    best: Optional[LastLocation] = None
    best_ts = None
    for loc in locations:
        if loc is None:
            continue
        ts = ensure_utc(loc.ts) or _OLDEST
        if best is None or ts > best_ts:
            best, best_ts = loc, ts
    return best


def snapshot_location(snapshot: Optional[ProgressSnapshot]) -> Optional[LastLocation]:
    """The pointer implied by a snapshot itself, stamped with its save time."""
    if snapshot is None or snapshot.last_updated is None:
        return None
    return LastLocation(
        module_id=snapshot.current_module,
        question_index=snapshot.current_question,
        ts=snapshot.last_updated,
        source="snapshot",
    )


def locate(
    identity: Optional[Identity],
    snapshot: Optional[ProgressSnapshot],
    preferred_location: Optional[LastLocation],
    catalog: ContentCatalog,
) -> ResumeResult:
    unlocked = frozenset(snapshot.unlocked_modules) if snapshot is not None else frozenset({0})
    try:
        if preferred_location is None:
            module_id, question_index, source = 0, 0, "default"
        else:
            module_id = preferred_location.module_id
            question_index = preferred_location.question_index
            source = preferred_location.source or "preferred"

        module_count = catalog.module_count
        if module_count == 0:
            return ResumeResult(target=ResumeTarget(), unlocked_modules=unlocked, source=source)

        module_id = clamp(module_id, 0, module_count - 1)
        widened = fell_back = False

        if module_id not in unlocked:
            if identity is not None and identity.is_authenticated:
                # Trust the pointer over a stale unlocked list.
                unlocked = unlocked | frozenset(range(module_id + 1))
                widened = True
            else:
                # Do not trust an out-of-policy pointer for guests.
                module_id = clamp(max(unlocked) if unlocked else 0, 0, module_count - 1)
                fell_back = True

        question_index = clamp(question_index, 0, catalog.question_count(module_id) - 1)
        return ResumeResult(
            target=ResumeTarget(module_id=module_id, question_index=question_index),
            unlocked_modules=unlocked,
            source=source,
            widened=widened,
            fell_back=fell_back,
        )
    except Exception as e:
        logger.warning("resume locate failed, defaulting to (0, 0): %s", e)
        return ResumeResult(target=ResumeTarget(), unlocked_modules=unlocked, source="default")
