"""Expected study minutes per goal, by content type and learner level."""

from __future__ import annotations

import math
from typing import Any, Dict

from .study_plan import Goal, LessonGoal, StatuteReadingGoal, SummaryGoal

LEVELS = ("beginner", "intermediate", "advanced")

MINUTES_PER_PAGE: Dict[str, Dict[str, int]] = {
    "MATERIAL": {"beginner": 5, "intermediate": 3, "advanced": 1},
    "QUESTION_SET": {"beginner": 10, "intermediate": 6, "advanced": 2},
    "STATUTE_READING": {"beginner": 5, "intermediate": 3, "advanced": 1},
}


def _non_negative(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def minutes_per_page(goal_type: str, level: str) -> float:
    table = MINUTES_PER_PAGE.get(goal_type)
    if table is None:
        return 0.0
    # Unknown levels read as the fastest tier.
    return float(table.get(level, table["advanced"]))


def estimate_goal_minutes(goal: Goal, level: str) -> int:
    """Return the expected minutes for `goal`; invalid inputs yield 0, never an error."""
    if isinstance(goal, LessonGoal):
        total = sum(_non_negative(sub.minutes) for sub in goal.sub_lessons)
    elif isinstance(goal, SummaryGoal):
        total = _non_negative(goal.manual_minutes)
    elif goal.type in MINUTES_PER_PAGE:
        rate = minutes_per_page(goal.type, level)
        if isinstance(goal, StatuteReadingGoal):
            multiplier = _non_negative(goal.multiplier)
            if multiplier > 1:
                rate *= multiplier
        total = _non_negative(getattr(goal, "pages", None)) * rate
    else:
        return 0
    if math.isnan(total) or math.isinf(total) or total <= 0:
        return 0
    # Halves round up.
    return int(math.floor(total + 0.5))


__all__ = ["LEVELS", "MINUTES_PER_PAGE", "estimate_goal_minutes", "minutes_per_page"]
