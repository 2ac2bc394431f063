"""
Remote progress record endpoints: snapshot upsert/read/delete, last-location
pointer and the append-only audit log.
"""

from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session as DBSession

from progress_sync.config import get_db
from progress_sync.models.progress import GameProgress, ProgressEvent
from progress_sync.schemas.record_schemas import (
    DeleteProgressResponse,
    LastLocationResponse,
    LastLocationUpdate,
    ProgressEventCreate,
    ProgressEventListResponse,
    ProgressEventResponse,
    ProgressRecord,
)
from progress_sync.utils.common import ensure_utc, utcnow
from progress_sync.utils.logger import configure_logging

progress_routes = APIRouter()
logger = configure_logging()


def _get_row(user_id: str, db: DBSession) -> GameProgress | None:
    return db.query(GameProgress).filter(GameProgress.user_id == user_id).first()


def _row_to_record(row: GameProgress) -> ProgressRecord:
    return ProgressRecord(
        current_module=row.current_module or 0,
        current_question=row.current_question or 0,
        total_score=row.total_score or 0,
        level=row.level or 1,
        xp=row.xp or 0,
        streak=row.streak or 0,
        combo=row.combo or 0,
        perfect_modules_count=row.perfect_modules_count or 0,
        completed_modules=row.completed_modules or [],
        unlocked_modules=row.unlocked_modules or [0],
        answered_questions=row.answered_questions or {},
        achievements=row.achievements or [],
        power_ups=row.power_ups or {},
        shuffled_questions=row.shuffled_questions or {},
        last_saved=ensure_utc(row.last_saved),
    )


def _event_response(event: ProgressEvent) -> ProgressEventResponse:
    return ProgressEventResponse(
        id=event.id,
        user_id=event.user_id,
        event_type=event.event_type,
        module_id=event.module_id,
        payload=event.payload or {},
        created_at=ensure_utc(event.created_at),
    )


@progress_routes.put("/progress/{user_id}", response_model=ProgressRecord)
async def upsert_progress(user_id: str, body: ProgressRecord, db: DBSession = Depends(get_db)) -> ProgressRecord:
    """Create or replace the progress snapshot for a user. Keeps the last-location pointer."""
    row = _get_row(user_id, db)
    if row is None:
        row = GameProgress(user_id=user_id)
        db.add(row)

    data = body.model_dump(mode="json")
    for field in (
        "current_module",
        "current_question",
        "total_score",
        "level",
        "xp",
        "streak",
        "combo",
        "perfect_modules_count",
        "completed_modules",
        "unlocked_modules",
        "answered_questions",
        "achievements",
        "power_ups",
        "shuffled_questions",
    ):
        setattr(row, field, data[field])
    now = utcnow()
    row.last_saved = ensure_utc(body.last_saved) or now
    row.updated_at = now
    db.commit()
    db.refresh(row)
    logger.info("progress upserted user_id=%s module=%s score=%s", user_id, row.current_module, row.total_score)
    return _row_to_record(row)


@progress_routes.get("/progress/{user_id}", response_model=ProgressRecord)
async def get_progress(user_id: str, db: DBSession = Depends(get_db)) -> ProgressRecord:
    row = _get_row(user_id, db)
    # Pointer-only rows carry no snapshot yet.
    if row is None or row.last_saved is None:
        raise HTTPException(status_code=404, detail="Progress not found")
    return _row_to_record(row)


@progress_routes.delete("/progress/{user_id}", response_model=DeleteProgressResponse)
async def delete_progress(user_id: str, db: DBSession = Depends(get_db)) -> DeleteProgressResponse:
    """Remove snapshot and pointer. The audit log keeps a RESET entry."""
    row = _get_row(user_id, db)
    deleted = row is not None
    if row is not None:
        db.delete(row)
    db.add(ProgressEvent(id=str(uuid4()), user_id=user_id, event_type="RESET", payload={"had_record": deleted}))
    db.commit()
    logger.info("progress deleted user_id=%s existed=%s", user_id, deleted)
    return DeleteProgressResponse(deleted=deleted)


@progress_routes.patch("/progress/{user_id}/last-location", response_model=LastLocationResponse)
async def update_last_location(
    user_id: str,
    body: LastLocationUpdate,
    db: DBSession = Depends(get_db),
) -> LastLocationResponse:
    """Partial update: only the pointer columns change."""
    row = _get_row(user_id, db)
    if row is None:
        row = GameProgress(user_id=user_id)
        db.add(row)
    now = utcnow()
    row.last_module_id = body.module_id
    row.last_question_index = body.question_index
    row.last_location_ts = now
    row.updated_at = now
    db.commit()
    return LastLocationResponse(module_id=body.module_id, question_index=body.question_index, ts=now)


@progress_routes.get("/progress/{user_id}/last-location", response_model=LastLocationResponse)
async def get_last_location(user_id: str, db: DBSession = Depends(get_db)) -> LastLocationResponse:
    row = _get_row(user_id, db)
    if row is None or row.last_module_id is None:
        raise HTTPException(status_code=404, detail="Last location not found")
    return LastLocationResponse(
        module_id=int(row.last_module_id),
        question_index=int(row.last_question_index or 0),
        ts=ensure_utc(row.last_location_ts),
    )


@progress_routes.post("/progress/{user_id}/events", response_model=ProgressEventResponse)
async def record_event(
    user_id: str,
    body: ProgressEventCreate,
    db: DBSession = Depends(get_db),
) -> ProgressEventResponse:
    event = ProgressEvent(
        id=str(uuid4()),
        user_id=user_id,
        event_type=body.event_type,
        module_id=body.module_id,
        payload=body.payload,
        created_at=utcnow(),
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return _event_response(event)


@progress_routes.get("/progress/{user_id}/events", response_model=ProgressEventListResponse)
async def list_events(user_id: str, db: DBSession = Depends(get_db)) -> ProgressEventListResponse:
    events = (
        db.query(ProgressEvent)
        .filter(ProgressEvent.user_id == user_id)
        .order_by(ProgressEvent.created_at.asc())
        .all()
    )
    return ProgressEventListResponse(events=[_event_response(e) for e in events])
