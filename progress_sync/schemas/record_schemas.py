"""
Wire schemas of the remote record service (request/response bodies).
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from progress_sync.schemas.progress_schemas import (
    INITIAL_POWER_UPS,
    AnsweredQuestion,
    ProgressSnapshot,
)


class ProgressRecord(BaseModel):
    """Per-user progress record; column names follow the hosted schema."""
    current_module: int = 0
    current_question: int = 0
    total_score: int = 0
    level: int = 1
    xp: int = 0
    streak: int = 0
    combo: int = 0
    perfect_modules_count: int = 0
    completed_modules: list[int] = Field(default_factory=list)
    unlocked_modules: list[int] = Field(default_factory=lambda: [0])
    answered_questions: dict[str, AnsweredQuestion] = Field(default_factory=dict)
    achievements: list[str] = Field(default_factory=list)
    power_ups: dict[str, int] = Field(default_factory=lambda: dict(INITIAL_POWER_UPS))
    shuffled_questions: dict[int, list[int]] = Field(default_factory=dict)
    last_saved: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, snapshot: ProgressSnapshot) -> "ProgressRecord":
        return cls(
            current_module=snapshot.current_module,
            current_question=snapshot.current_question,
            total_score=snapshot.score,
            level=snapshot.level,
            xp=snapshot.xp,
            streak=snapshot.streak,
            combo=snapshot.combo,
            perfect_modules_count=snapshot.perfect_modules_count,
            completed_modules=sorted(snapshot.completed_modules),
            unlocked_modules=sorted(snapshot.unlocked_modules),
            answered_questions=dict(snapshot.answered_questions),
            achievements=sorted(snapshot.achievements),
            power_ups=dict(snapshot.power_ups),
            shuffled_questions={k: list(v) for k, v in snapshot.shuffled_question_order.items()},
            last_saved=snapshot.last_updated,
        )

    def to_snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            current_module=self.current_module,
            current_question=self.current_question,
            score=self.total_score,
            level=self.level,
            xp=self.xp,
            streak=self.streak,
            combo=self.combo,
            perfect_modules_count=self.perfect_modules_count,
            completed_modules=frozenset(self.completed_modules),
            unlocked_modules=frozenset(self.unlocked_modules or [0]),
            answered_questions=dict(self.answered_questions),
            achievements=frozenset(self.achievements),
            power_ups=dict(self.power_ups),
            shuffled_question_order={k: list(v) for k, v in self.shuffled_questions.items()},
            last_updated=self.last_saved,
        )


class LastLocationUpdate(BaseModel):
    module_id: int = 0
    question_index: int = 0


class LastLocationResponse(BaseModel):
    module_id: int
    question_index: int
    ts: Optional[datetime] = None


class ProgressEventCreate(BaseModel):
    event_type: str
    module_id: Optional[int] = None
    payload: dict[str, Any] = Field(default_factory=dict)


class ProgressEventResponse(BaseModel):
    id: str
    user_id: str
    event_type: str
    module_id: Optional[int] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ProgressEventListResponse(BaseModel):
    events: list[ProgressEventResponse]


class DeleteProgressResponse(BaseModel):
    deleted: bool
