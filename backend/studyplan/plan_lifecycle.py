"""Plan lifecycle transitions (pause, reschedule, restart, switch) and completion events."""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Callable, Dict, Iterable, Optional

from .catalog import ContentStore, content_store
from .learner import (
    LearnerRecord,
    LearnerStore,
    PlanConfig,
    Routine,
    UserLevel,
    WEEKDAYS,
    learner_store,
    normalize_user_id,
)
from .study_plan import StudyPlan
from .telemetry import emit_event

logger = logging.getLogger(__name__)

REVIEW_ID_SEPARATOR = "#"


def review_id(goal_id: str, revision_index: int) -> str:
    return f"{goal_id}{REVIEW_ID_SEPARATOR}{revision_index}"


def _review_goal_id(value: str) -> str:
    return value.split(REVIEW_ID_SEPARATOR, 1)[0]


def _with_config(record: LearnerRecord, plan_id: str, today: date, **changes) -> LearnerRecord:
    updated = record.model_copy(deep=True)
    config = updated.config_for(plan_id, today)
    updated.plan_configs[plan_id] = config.model_copy(update=changes)
    return updated


def pause_plan(record: LearnerRecord, plan_id: str, today: date) -> LearnerRecord:
    return _with_config(record, plan_id, today, is_paused=True)


def resume_plan(record: LearnerRecord, plan_id: str, today: date) -> LearnerRecord:
    return _with_config(record, plan_id, today, is_paused=False)


def toggle_pause(record: LearnerRecord, plan_id: str, today: date) -> LearnerRecord:
    current = record.config_for(plan_id, today)
    return _with_config(record, plan_id, today, is_paused=not current.is_paused)


def reschedule_plan(record: LearnerRecord, plan_id: str, today: date) -> LearnerRecord:
    """Move day 0 to today and unpause; completion state is untouched."""
    return _with_config(record, plan_id, today, start_date=today, is_paused=False)


def restart_plan(record: LearnerRecord, plan: StudyPlan, today: date, confirmed: bool = False) -> LearnerRecord:
    """Erase all progress made on ``plan`` and start it over from today.

    This is the only destructive transition. Completed goals belonging to the
    plan's content tree are removed, along with any review ids whose goal part
    is one of them, and the plan's study-time counter is reset to zero.
    """
    if not confirmed:
        raise ValueError("Restarting a plan erases its progress and must be confirmed.")
    plan_goal_ids = plan.goal_ids()
    updated = record.model_copy(deep=True)
    progress = updated.progress
    progress.completed_goal_ids = [
        goal_id for goal_id in progress.completed_goal_ids if goal_id not in plan_goal_ids
    ]
    progress.completed_review_ids = [
        value for value in progress.completed_review_ids if _review_goal_id(value) not in plan_goal_ids
    ]
    progress.plan_study_seconds[plan.id] = 0
    updated.plan_configs[plan.id] = PlanConfig(start_date=today, is_paused=False)
    return updated


def switch_active_plan(record: LearnerRecord, plan_id: str, today: date) -> LearnerRecord:
    updated = record.model_copy(deep=True)
    previous = updated.current_plan_id
    if previous and previous != plan_id:
        updated.plan_configs[previous] = updated.config_for(previous, today).model_copy(
            update={"is_paused": True}
        )
    updated.plan_configs[plan_id] = updated.config_for(plan_id, today).model_copy(update={"is_paused": False})
    updated.current_plan_id = plan_id
    return updated


def complete_goal(record: LearnerRecord, plan_id: str, goal_id: str, elapsed_seconds: int = 0) -> LearnerRecord:
    if elapsed_seconds < 0:
        raise ValueError("Elapsed study time cannot be negative.")
    updated = record.model_copy(deep=True)
    progress = updated.progress
    if goal_id not in progress.completed_goal_ids:
        progress.completed_goal_ids.append(goal_id)
    progress.total_study_seconds += elapsed_seconds
    progress.plan_study_seconds[plan_id] = progress.plan_study_seconds.get(plan_id, 0) + elapsed_seconds
    return updated


def complete_review(record: LearnerRecord, goal_id: str, revision_index: int) -> LearnerRecord:
    if revision_index < 0:
        raise ValueError("Revision index cannot be negative.")
    updated = record.model_copy(deep=True)
    value = review_id(goal_id, revision_index)
    if value not in updated.progress.completed_review_ids:
        updated.progress.completed_review_ids.append(value)
    return updated


def update_routine(record: LearnerRecord, routine: Routine) -> LearnerRecord:
    return record.model_copy(update={"routine": routine.model_copy(deep=True)}, deep=True)


def set_level(record: LearnerRecord, level: UserLevel) -> LearnerRecord:
    # Re-validate so an unknown level is rejected rather than stored.
    return LearnerRecord.model_validate({**record.model_dump(), "level": level})


class PlanLifecycleController:
    """Serializes read-modify-write of a learner record and publishes the change."""

    def __init__(
        self,
        *,
        learners: Optional[LearnerStore] = None,
        content: Optional[ContentStore] = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._learners = learners
        self._content = content
        self._clock = clock
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def learners(self) -> LearnerStore:
        return self._learners or learner_store

    @property
    def content(self) -> ContentStore:
        return self._content or content_store

    def _lock_for(self, user_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    def _apply(
        self,
        user_id: str,
        event: str,
        transition: Callable[[LearnerRecord], LearnerRecord],
        **payload,
    ) -> LearnerRecord:
        normalized = normalize_user_id(user_id)
        with self._lock_for(normalized):
            record = self.learners.require(normalized)
            stored = self.learners.upsert(transition(record))
        logger.info("Applied %s for learner %s", event, normalized)
        emit_event(event, user_id=normalized, **payload)
        return stored

    def pause(self, user_id: str, plan_id: str) -> LearnerRecord:
        self.content.require_plan(plan_id)
        today = self._clock()
        return self._apply(user_id, "plan_paused", lambda record: pause_plan(record, plan_id, today), plan_id=plan_id)

    def resume(self, user_id: str, plan_id: str) -> LearnerRecord:
        self.content.require_plan(plan_id)
        today = self._clock()
        return self._apply(user_id, "plan_resumed", lambda record: resume_plan(record, plan_id, today), plan_id=plan_id)

    def reschedule(self, user_id: str, plan_id: str) -> LearnerRecord:
        self.content.require_plan(plan_id)
        today = self._clock()
        return self._apply(
            user_id,
            "plan_rescheduled",
            lambda record: reschedule_plan(record, plan_id, today),
            plan_id=plan_id,
            start_date=today,
        )

    def restart(self, user_id: str, plan_id: str, *, confirmed: bool = False) -> LearnerRecord:
        if not confirmed:
            raise ValueError("Restarting a plan erases its progress and must be confirmed.")
        plan = self.content.require_plan(plan_id)
        today = self._clock()
        return self._apply(
            user_id,
            "plan_restarted",
            lambda record: restart_plan(record, plan, today, confirmed=True),
            plan_id=plan_id,
            start_date=today,
        )

    def activate(self, user_id: str, plan_id: str) -> LearnerRecord:
        self.content.require_plan(plan_id)
        today = self._clock()
        return self._apply(
            user_id,
            "active_plan_switched",
            lambda record: switch_active_plan(record, plan_id, today),
            plan_id=plan_id,
        )

    def complete_goal(self, user_id: str, plan_id: str, goal_id: str, elapsed_seconds: int = 0) -> LearnerRecord:
        plan = self.content.require_plan(plan_id)
        if goal_id not in plan.goal_ids():
            raise LookupError(f"Goal '{goal_id}' does not belong to plan '{plan_id}'.")
        return self._apply(
            user_id,
            "goal_completed",
            lambda record: complete_goal(record, plan_id, goal_id, elapsed_seconds),
            plan_id=plan_id,
            goal_id=goal_id,
            elapsed_seconds=elapsed_seconds,
        )

    def complete_review(self, user_id: str, goal_id: str, revision_index: int) -> LearnerRecord:
        return self._apply(
            user_id,
            "review_completed",
            lambda record: complete_review(record, goal_id, revision_index),
            goal_id=goal_id,
            revision_index=revision_index,
        )

    def update_routine(self, user_id: str, routine: Routine) -> LearnerRecord:
        return self._apply(
            user_id,
            "routine_updated",
            lambda record: update_routine(record, routine),
            study_days=sum(1 for minutes in _weekly_minutes(routine) if minutes > 0),
        )

    def set_level(self, user_id: str, level: UserLevel) -> LearnerRecord:
        return self._apply(user_id, "level_updated", lambda record: set_level(record, level), level=level)


def _weekly_minutes(routine: Routine) -> Iterable[int]:
    return (routine.minutes_for_weekday(weekday) for weekday in WEEKDAYS)


lifecycle = PlanLifecycleController()

__all__ = [
    "PlanLifecycleController",
    "complete_goal",
    "complete_review",
    "lifecycle",
    "pause_plan",
    "reschedule_plan",
    "restart_plan",
    "resume_plan",
    "review_id",
    "set_level",
    "switch_active_plan",
    "toggle_pause",
    "update_routine",
]
