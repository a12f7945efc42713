"""Learner-centric REST endpoints: schedule retrieval and plan lifecycle commands."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from .learner import LearnerRecord, Routine, ScheduledItem, UserLevel
from .plan_lifecycle import lifecycle
from .schedule_generator import HORIZON_DAYS, GeneratedSchedule, generate_schedule_for_user

router = APIRouter(prefix="/api/learners", tags=["learners"])
logger = logging.getLogger(__name__)


class RestartPlanRequest(BaseModel):
    confirmed: bool = False


class CompleteGoalRequest(BaseModel):
    elapsed_seconds: int = Field(default=0, ge=0)


class RoutineUpdateRequest(BaseModel):
    days: Dict[str, Any] = Field(default_factory=dict)


class LevelUpdateRequest(BaseModel):
    level: UserLevel


def _raise_http(exc: Exception) -> NoReturn:
    if isinstance(exc, LookupError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get(
    "/{user_id}/schedule",
    response_model=GeneratedSchedule,
    status_code=status.HTTP_200_OK,
)
def get_schedule(
    user_id: str,
    plan_id: Optional[str] = Query(default=None),
    start_day: Optional[int] = Query(default=None, ge=0, le=HORIZON_DAYS),
    day_span: Optional[int] = Query(default=None, ge=1, le=HORIZON_DAYS),
    refresh: bool = Query(default=False, description="Ignore the cached schedule and regenerate it."),
) -> GeneratedSchedule:
    try:
        schedule = generate_schedule_for_user(user_id, plan_id, refresh=refresh)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)
    return schedule.window(start_day, day_span)


@router.get(
    "/{user_id}/overdue",
    response_model=List[ScheduledItem],
    status_code=status.HTTP_200_OK,
)
def get_overdue(user_id: str, plan_id: Optional[str] = Query(default=None)) -> List[ScheduledItem]:
    """Scheduled work dated before today that is still open; empty once the plan is rescheduled."""
    try:
        schedule = generate_schedule_for_user(user_id, plan_id)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)
    return schedule.overdue


@router.post("/{user_id}/plans/{plan_id}/pause", response_model=LearnerRecord)
def pause_plan(user_id: str, plan_id: str) -> LearnerRecord:
    try:
        return lifecycle.pause(user_id, plan_id)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


@router.post("/{user_id}/plans/{plan_id}/resume", response_model=LearnerRecord)
def resume_plan(user_id: str, plan_id: str) -> LearnerRecord:
    try:
        return lifecycle.resume(user_id, plan_id)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


@router.post("/{user_id}/plans/{plan_id}/reschedule", response_model=LearnerRecord)
def reschedule_plan(user_id: str, plan_id: str) -> LearnerRecord:
    try:
        return lifecycle.reschedule(user_id, plan_id)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


@router.post("/{user_id}/plans/{plan_id}/restart", response_model=LearnerRecord)
def restart_plan(user_id: str, plan_id: str, payload: RestartPlanRequest) -> LearnerRecord:
    try:
        return lifecycle.restart(user_id, plan_id, confirmed=payload.confirmed)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


@router.post("/{user_id}/plans/{plan_id}/activate", response_model=LearnerRecord)
def activate_plan(user_id: str, plan_id: str) -> LearnerRecord:
    try:
        return lifecycle.activate(user_id, plan_id)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


@router.post("/{user_id}/plans/{plan_id}/goals/{goal_id}/complete", response_model=LearnerRecord)
def complete_goal(
    user_id: str,
    plan_id: str,
    goal_id: str,
    payload: Optional[CompleteGoalRequest] = None,
) -> LearnerRecord:
    elapsed = payload.elapsed_seconds if payload else 0
    try:
        return lifecycle.complete_goal(user_id, plan_id, goal_id, elapsed)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


@router.post("/{user_id}/reviews/{goal_id}/{revision_index}/complete", response_model=LearnerRecord)
def complete_review(user_id: str, goal_id: str, revision_index: int) -> LearnerRecord:
    try:
        return lifecycle.complete_review(user_id, goal_id, revision_index)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


@router.put("/{user_id}/routine", response_model=LearnerRecord)
def update_routine(user_id: str, payload: RoutineUpdateRequest) -> LearnerRecord:
    try:
        return lifecycle.update_routine(user_id, Routine(days=payload.days))
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


@router.put("/{user_id}/level", response_model=LearnerRecord)
def update_level(user_id: str, payload: LevelUpdateRequest) -> LearnerRecord:
    try:
        return lifecycle.set_level(user_id, payload.level)
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


__all__ = ["router"]
