"""Day-by-day schedule generation from cycles, discipline cursors and the weekly routine."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from .cache import schedule_cache
from .catalog import ContentStore, content_store
from .cycle_expander import expand_cycle
from .duration import estimate_goal_minutes
from .learner import (
    LearnerStore,
    Routine,
    ScheduledItem,
    Simulado,
    SimuladoAttempt,
    learner_store,
    normalize_user_id,
)
from .study_plan import Cycle, PlannedGoal, SimuladoCycleItem, StudyPlan, flatten_plan
from .telemetry import emit_event

logger = logging.getLogger(__name__)


HORIZON_DAYS = 365
MAX_DAY_ITERATIONS = 1000
DEFAULT_GOAL_MINUTES = 30
EXAM_MINUTES_PER_QUESTION = 3
EXAM_MIN_REMAINING_MINUTES = 60
EXAM_DISCIPLINE_LABEL = "Simulado"


@dataclass
class GenerationState:
    """Cursor per discipline plus the (cycle, item) pointer, carried across the whole run."""

    cursors: Dict[str, int] = field(default_factory=dict)
    cycle_index: int = 0
    item_index: int = 0
    exhausted: bool = False

    def cursor(self, discipline_id: str) -> int:
        return self.cursors.get(discipline_id, 0)


@dataclass
class ScheduleRun:
    days: Dict[date, List[ScheduledItem]]
    state: GenerationState
    capped_days: List[date] = field(default_factory=list)


@dataclass(frozen=True)
class _RunInputs:
    plan: StudyPlan
    cycles: Sequence[Cycle]
    goals_by_discipline: Mapping[str, List[PlannedGoal]]
    completed_goal_ids: FrozenSet[str]
    level: str
    exams: Mapping[str, Simulado]
    attempted_exam_ids: FrozenSet[str]
    total_items: int


class ScheduleGenerator:
    """Greedy day packer over a plan's cycle rotation."""

    def __init__(
        self,
        *,
        horizon_days: int = HORIZON_DAYS,
        max_day_iterations: int = MAX_DAY_ITERATIONS,
    ) -> None:
        self._horizon_days = max(horizon_days, 1)
        self._max_day_iterations = max(max_day_iterations, 1)

    @property
    def max_day_iterations(self) -> int:
        return self._max_day_iterations

    def generate(
        self,
        plan: StudyPlan,
        routine: Routine,
        *,
        start_date: date,
        completed_goal_ids: Iterable[str],
        level: str,
        is_paused: bool = False,
        exam_catalog: Iterable[Simulado] = (),
        exam_attempts: Iterable[SimuladoAttempt] = (),
    ) -> ScheduleRun:
        state = GenerationState()
        days: Dict[date, List[ScheduledItem]] = {}
        capped_days: List[date] = []

        cycles = plan.ordered_cycles()
        if is_paused or not cycles or not routine.has_study_days():
            return ScheduleRun(days=days, state=state, capped_days=capped_days)

        total_items = sum(len(expand_cycle(cycle, plan)) for cycle in cycles)
        if total_items == 0:
            return ScheduleRun(days=days, state=state, capped_days=capped_days)

        inputs = _RunInputs(
            plan=plan,
            cycles=cycles,
            goals_by_discipline=flatten_plan(plan),
            completed_goal_ids=frozenset(completed_goal_ids),
            level=level,
            exams={exam.id: exam for exam in exam_catalog},
            attempted_exam_ids=frozenset(attempt.simulado_id for attempt in exam_attempts),
            total_items=total_items,
        )

        for day_offset in range(self._horizon_days):
            if state.exhausted:
                break
            day = start_date + timedelta(days=day_offset)
            minutes_available = routine.minutes_for(day)
            if minutes_available <= 0:
                continue
            items, hit_cap = self._fill_day(day, minutes_available, state, inputs)
            if hit_cap:
                capped_days.append(day)
            if items:
                days[day] = items

        return ScheduleRun(days=days, state=state, capped_days=capped_days)

    def _fill_day(
        self,
        day: date,
        minutes_available: int,
        state: GenerationState,
        inputs: _RunInputs,
    ) -> Tuple[List[ScheduledItem], bool]:
        items: List[ScheduledItem] = []
        remaining = minutes_available
        # Consecutive pulls that neither emitted an item nor moved a cursor.
        idle_pulls = 0

        for _ in range(self._max_day_iterations):
            expanded = expand_cycle(inputs.cycles[state.cycle_index], inputs.plan)
            if state.item_index >= len(expanded):
                if not self._advance_cycle(state, inputs):
                    state.exhausted = True
                    return items, False
                continue

            entry = expanded[state.item_index]
            if isinstance(entry, SimuladoCycleItem):
                exam = inputs.exams.get(entry.simulado_id)
                if exam is None or exam.id in inputs.attempted_exam_ids:
                    state.item_index += 1
                    idle_pulls += 1
                    if idle_pulls >= inputs.total_items:
                        state.exhausted = True
                        return items, False
                    continue
                if not items or remaining > EXAM_MIN_REMAINING_MINUTES:
                    items.append(self._exam_item(day, exam))
                    state.item_index += 1
                # Exams close the day whether or not they were placed.
                return items, False

            goals = inputs.goals_by_discipline.get(entry.discipline_id, [])
            start_cursor = state.cursor(entry.discipline_id)
            cursor = start_cursor
            scheduled = 0
            while scheduled < entry.subjects_count and cursor < len(goals):
                planned = goals[cursor]
                if planned.goal_id in inputs.completed_goal_ids:
                    cursor += 1
                    continue
                minutes = estimate_goal_minutes(planned.goal, inputs.level) or DEFAULT_GOAL_MINUTES
                if minutes <= remaining or not items:
                    items.append(self._goal_item(day, planned, minutes))
                    remaining -= minutes
                    cursor += 1
                    scheduled += 1
                    continue
                # Does not fit: keep the cursor and the cycle pointer for tomorrow.
                state.cursors[entry.discipline_id] = cursor
                return items, False

            state.cursors[entry.discipline_id] = cursor
            state.item_index += 1
            if cursor == start_cursor:
                idle_pulls += 1
                if idle_pulls >= inputs.total_items:
                    state.exhausted = True
                    return items, False
            else:
                idle_pulls = 0

        return items, True

    @staticmethod
    def _advance_cycle(state: GenerationState, inputs: _RunInputs) -> bool:
        state.cycle_index += 1
        state.item_index = 0
        if state.cycle_index < len(inputs.cycles):
            return True
        if inputs.plan.cycle_system == "rotating":
            state.cycle_index = 0
            return True
        state.cycle_index = len(inputs.cycles) - 1
        state.item_index = len(expand_cycle(inputs.cycles[-1], inputs.plan))
        return False

    @staticmethod
    def _goal_item(day: date, planned: PlannedGoal, minutes: int) -> ScheduledItem:
        return ScheduledItem(
            date=day,
            goal_id=planned.goal_id,
            type=planned.goal.type,
            title=planned.goal.title,
            discipline_id=planned.discipline_id,
            discipline_label=planned.discipline_name,
            subject_label=planned.subject_name,
            minutes=minutes,
            completed=False,
        )

    @staticmethod
    def _exam_item(day: date, exam: Simulado) -> ScheduledItem:
        return ScheduledItem(
            date=day,
            goal_id=exam.id,
            type="SIMULADO",
            title=exam.title,
            discipline_label=EXAM_DISCIPLINE_LABEL,
            subject_label=exam.description,
            minutes=exam.total_questions * EXAM_MINUTES_PER_QUESTION,
            completed=False,
            exam=exam.model_copy(deep=True),
        )


generator = ScheduleGenerator()


def generate_schedule(
    plan: StudyPlan,
    routine: Routine,
    start_date: date,
    completed_goal_ids: Iterable[str],
    level: str,
    is_paused: bool = False,
    exam_catalog: Iterable[Simulado] = (),
    exam_attempts: Iterable[SimuladoAttempt] = (),
) -> Dict[date, List[ScheduledItem]]:
    """Return only the calendar (date -> items) for the given inputs."""
    return generator.generate(
        plan,
        routine,
        start_date=start_date,
        completed_goal_ids=completed_goal_ids,
        level=level,
        is_paused=is_paused,
        exam_catalog=exam_catalog,
        exam_attempts=exam_attempts,
    ).days


class GeneratedSchedule(BaseModel):
    """Schedule for one learner and plan, as served to clients and cached."""

    user_id: str
    plan_id: str
    start_date: date
    as_of: date
    is_paused: bool = False
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    days: Dict[date, List[ScheduledItem]] = Field(default_factory=dict)
    capped_days: List[date] = Field(default_factory=list)

    @property
    def item_count(self) -> int:
        return sum(len(items) for items in self.days.values())

    @property
    def total_minutes(self) -> int:
        return sum(item.minutes for items in self.days.values() for item in items)

    @property
    def overdue(self) -> List[ScheduledItem]:
        """Uncompleted items dated before ``as_of``, oldest first."""
        return [
            item.model_copy(deep=True)
            for day in sorted(self.days)
            for item in self.days[day]
            if item.is_late and not item.completed
        ]

    def window(self, start_day: Optional[int] = None, day_span: Optional[int] = None) -> "GeneratedSchedule":
        """Copy limited to day offsets [start_day, start_day + day_span) from the start date."""
        if start_day is None and day_span is None:
            return self.model_copy(deep=True)
        start = max(int(start_day or 0), 0)
        span = max(int(day_span) if day_span is not None else HORIZON_DAYS - start, 1)
        first = self.start_date + timedelta(days=start)
        limit = first + timedelta(days=span)
        clone = self.model_copy(deep=True)
        clone.days = {day: items for day, items in clone.days.items() if first <= day < limit}
        return clone


def _mark_late(days: Mapping[date, List[ScheduledItem]], today: date) -> None:
    for day, items in days.items():
        if day < today:
            for item in items:
                item.is_late = True


def generate_schedule_for_user(
    user_id: str,
    plan_id: Optional[str] = None,
    *,
    today: Optional[date] = None,
    refresh: bool = False,
    learners: Optional[LearnerStore] = None,
    content: Optional[ContentStore] = None,
) -> GeneratedSchedule:
    """Build (or reuse the cached) schedule for a learner's plan.

    Cached schedules are only reused on the day they were built for, since the
    late flags and a plan without a stored config both depend on ``today``.
    """
    learners = learners or learner_store
    content = content or content_store
    today = today or date.today()
    token = schedule_cache.token(normalize_user_id(user_id))
    record = learners.require(user_id)
    resolved_plan_id = plan_id or record.current_plan_id
    if not resolved_plan_id:
        raise LookupError(f"Learner '{user_id}' has no active study plan.")

    if not refresh:
        cached = schedule_cache.get(record.id, resolved_plan_id)
        if cached is not None and cached.as_of == today:
            return cached

    plan = content.require_plan(resolved_plan_id)
    config = record.config_for(plan.id, today)

    start = time.perf_counter()
    try:
        run = generator.generate(
            plan,
            record.routine,
            start_date=config.start_date,
            completed_goal_ids=record.progress.completed_goal_ids,
            level=record.level,
            is_paused=config.is_paused,
            exam_catalog=content.fetch_exam_catalog(),
            exam_attempts=content.attempts_for(record.id),
        )
    except Exception as exc:  # noqa: BLE001
        duration_ms = (time.perf_counter() - start) * 1000.0
        emit_event(
            "schedule_generation",
            user_id=record.id,
            plan_id=plan.id,
            status="error",
            duration_ms=round(duration_ms, 2),
            error=str(exc),
            exception_type=exc.__class__.__name__,
        )
        logger.exception("Failed to generate schedule for %s (plan %s)", record.id, plan.id)
        raise
    duration_ms = (time.perf_counter() - start) * 1000.0

    for day in run.capped_days:
        logger.warning(
            "Schedule day %s for learner %s (plan %s) hit the %d-iteration cap; keeping the partial day",
            day.isoformat(),
            record.id,
            plan.id,
            generator.max_day_iterations,
        )

    _mark_late(run.days, today)
    schedule = GeneratedSchedule(
        user_id=record.id,
        plan_id=plan.id,
        start_date=config.start_date,
        as_of=today,
        is_paused=config.is_paused,
        days=run.days,
        capped_days=run.capped_days,
    )
    emit_event(
        "schedule_generation",
        user_id=record.id,
        plan_id=plan.id,
        status="paused" if config.is_paused else "success",
        duration_ms=round(duration_ms, 2),
        item_count=schedule.item_count,
        study_days=len(schedule.days),
        total_minutes=schedule.total_minutes,
        capped_day_count=len(run.capped_days),
        overdue_count=len(schedule.overdue),
        start_date=config.start_date,
    )
    if not schedule_cache.set(record.id, plan.id, schedule, token=token):
        logger.debug("Learner %s changed while generating plan %s; result not cached", record.id, plan.id)
    return schedule


__all__ = [
    "DEFAULT_GOAL_MINUTES",
    "EXAM_MIN_REMAINING_MINUTES",
    "EXAM_MINUTES_PER_QUESTION",
    "GeneratedSchedule",
    "GenerationState",
    "HORIZON_DAYS",
    "MAX_DAY_ITERATIONS",
    "ScheduleGenerator",
    "ScheduleRun",
    "generate_schedule",
    "generate_schedule_for_user",
    "generator",
]
