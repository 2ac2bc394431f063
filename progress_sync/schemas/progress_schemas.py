"""
Progress schemas: the resumable game state and the pointers used to resume it.

Snapshots are immutable values. Every change produces a new snapshot through
``model_copy(update=...)``; collections are frozensets or copied dicts.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

INITIAL_POWER_UPS = {"skip": 2}


def question_key(module: int, question: int) -> str:
    return f"{module}-{question}"


def parse_question_key(key: str) -> Optional[tuple[int, int]]:
    """Parse a "module-question" key. Returns None for malformed keys."""
    if not isinstance(key, str):
        return None
    module, sep, question = key.partition("-")
    if not sep:
        return None
    try:
        return int(module), int(question)
    except ValueError:
        return None


class AnsweredQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    answered: bool = True
    selected_answer: Optional[int] = None  # None when skipped
    was_correct: bool = False


class ProgressSnapshot(BaseModel):
    """Complete resumable game state."""
    model_config = ConfigDict(frozen=True)

    current_module: int = 0
    current_question: int = 0
    score: int = 0
    level: int = 1
    xp: int = 0
    streak: int = 0
    combo: int = 0
    perfect_modules_count: int = 0
    completed_modules: frozenset[int] = frozenset()
    unlocked_modules: frozenset[int] = frozenset({0})
    answered_questions: dict[str, AnsweredQuestion] = Field(default_factory=dict)
    achievements: frozenset[str] = frozenset()
    power_ups: dict[str, int] = Field(default_factory=lambda: dict(INITIAL_POWER_UPS))
    shuffled_question_order: dict[int, list[int]] = Field(default_factory=dict)
    last_updated: Optional[datetime] = None

    @field_serializer("completed_modules", "unlocked_modules", "achievements")
    def _sorted_set(self, value: frozenset) -> list:
        return sorted(value)

    def module_answers(self, module: int) -> dict[str, AnsweredQuestion]:
        prefix = f"{module}-"
        return {k: v for k, v in self.answered_questions.items() if k.startswith(prefix)}

    def is_answered(self, module: int, question: int) -> bool:
        entry = self.answered_questions.get(question_key(module, question))
        return bool(entry and entry.answered)

    def has_progress(self) -> bool:
        return bool(self.answered_questions or self.completed_modules or self.score)


class LastLocation(BaseModel):
    """Minimal resume pointer, cheaper than a full snapshot."""
    model_config = ConfigDict(frozen=True)

    module_id: int = 0
    question_index: int = 0
    ts: Optional[datetime] = None
    source: Optional[str] = None  # "remote" | "local" | "snapshot"


class ResumeTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    module_id: int = 0
    question_index: int = 0


class StoreResult(BaseModel):
    """Outcome of a remote write. Failures are reported, not raised."""
    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "StoreResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> "StoreResult":
        return cls(success=False, error=error)
