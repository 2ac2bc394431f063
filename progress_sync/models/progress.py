
from progress_sync.config import Base
from sqlalchemy import Column, Integer, String, JSON, DateTime
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GameProgress(Base):
    """
    Per-user progress record. Upserted on user_id.

    Contains:
    - Snapshot fields mirrored as columns (scores, module sets, answers)
    - The last-location pointer, updated independently of the snapshot
    """
    __tablename__ = "game_progress"

    user_id = Column(String, primary_key=True, index=True)

    current_module = Column(Integer, default=0, nullable=False)
    current_question = Column(Integer, default=0, nullable=False)
    total_score = Column(Integer, default=0, nullable=False)
    level = Column(Integer, default=1, nullable=False)
    xp = Column(Integer, default=0, nullable=False)
    streak = Column(Integer, default=0, nullable=False)
    combo = Column(Integer, default=0, nullable=False)
    perfect_modules_count = Column(Integer, default=0, nullable=False)
    completed_modules = Column(JSON, nullable=True)  # list[int]
    unlocked_modules = Column(JSON, nullable=True)  # list[int]
    answered_questions = Column(JSON, nullable=True)  # {"m-q": {answered, selected_answer, was_correct}}
    achievements = Column(JSON, nullable=True)  # list[str]
    power_ups = Column(JSON, nullable=True)  # {type: count}
    shuffled_questions = Column(JSON, nullable=True)  # {"m": [question indices]}

    # Null until a full snapshot is written; pointer-only rows have no snapshot.
    last_saved = Column(DateTime(timezone=True), nullable=True)

    last_module_id = Column(Integer, nullable=True)
    last_question_index = Column(Integer, nullable=True)
    last_location_ts = Column(DateTime(timezone=True), nullable=True)

    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class ProgressEvent(Base):
    """Append-only audit log of resume/login/merge events."""
    __tablename__ = "progress_events"

    id = Column(String, primary_key=True, index=True)  # uuid
    user_id = Column(String, index=True, nullable=False)
    event_type = Column(String, nullable=False)  # LOGIN_RESUME|GUEST_MERGE|RESET|...
    module_id = Column(Integer, nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
