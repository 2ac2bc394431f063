"""
Scoring and power-up rules applied when answers are recorded.
"""

from dataclasses import dataclass
from typing import Dict

from progress_sync.schemas.progress_schemas import INITIAL_POWER_UPS, ProgressSnapshot

POINTS_PER_CORRECT = 10
XP_PER_CORRECT = 25
XP_PER_LEVEL = 100

POWER_UP_REFRESH = {"skip": 1}
POWER_UP_MAX = {"skip": 2}


@dataclass(frozen=True)
class ScoredAnswer:
    snapshot: ProgressSnapshot
    points: int
    leveled_up: bool


def score_answer(snapshot: ProgressSnapshot, correct: bool) -> ScoredAnswer:
    """Correct: points scale with combo, xp and level grow. Wrong: streak and combo reset."""
    if not correct:
        return ScoredAnswer(snapshot.model_copy(update={"streak": 0, "combo": 0}), 0, False)

    points = POINTS_PER_CORRECT * (snapshot.combo + 1)
    xp = snapshot.xp + XP_PER_CORRECT
    level = snapshot.level
    leveled_up = False
    threshold = level * XP_PER_LEVEL
    if xp >= threshold:
        level += 1
        xp = xp % threshold
        leveled_up = True

    updated = snapshot.model_copy(
        update={
            "score": snapshot.score + points,
            "streak": snapshot.streak + 1,
            "combo": snapshot.combo + 1,
            "xp": xp,
            "level": level,
        }
    )
    return ScoredAnswer(updated, points, leveled_up)


def is_perfect_attempt(snapshot: ProgressSnapshot, module: int, question_count: int) -> bool:
    """Every question of the module answered correctly (skips do not count as correct)."""
    answers = snapshot.module_answers(module)
    if question_count <= 0 or len(answers) < question_count:
        return False
    return all(a.was_correct for a in answers.values())


def can_use_power_up(power_ups: Dict[str, int], kind: str) -> bool:
    return power_ups.get(kind, 0) > 0


def consume_power_up(power_ups: Dict[str, int], kind: str) -> Dict[str, int]:
    if not can_use_power_up(power_ups, kind):
        return dict(power_ups)
    return {**power_ups, kind: power_ups[kind] - 1}


def refresh_power_ups(power_ups: Dict[str, int]) -> Dict[str, int]:
    """Top up on module start, capped at the maximum."""
    refreshed = dict(power_ups)
    for kind, amount in POWER_UP_REFRESH.items():
        current = refreshed.get(kind, INITIAL_POWER_UPS.get(kind, 0))
        refreshed[kind] = min(current + amount, POWER_UP_MAX.get(kind, current + amount))
    return refreshed
