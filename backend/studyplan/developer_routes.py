"""Developer utilities for manual resets and generator inspection."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from .cache import schedule_cache
from .catalog import content_store
from .learner import learner_store
from .schedule_generator import generator
from .telemetry import emit_event


router = APIRouter(prefix="/api/developer", tags=["developer"])


class DeveloperResetRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class GenerationStatePayload(BaseModel):
    user_id: str
    plan_id: str
    cursors: Dict[str, int] = Field(default_factory=dict)
    cycle_index: int = 0
    item_index: int = 0
    exhausted: bool = False
    capped_days: List[date] = Field(default_factory=list)


@router.post("/reset", status_code=status.HTTP_204_NO_CONTENT)
def developer_reset(payload: DeveloperResetRequest) -> Response:
    user_id = payload.user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Learner id cannot be empty.",
        )
    learner_store.delete(user_id)
    schedule_cache.invalidate(user_id)
    emit_event("developer_reset", user_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/learners/{user_id}/generation-state",
    response_model=GenerationStatePayload,
    status_code=status.HTTP_200_OK,
)
def developer_generation_state(user_id: str, plan_id: Optional[str] = Query(default=None)) -> GenerationStatePayload:
    """Final cursors and cycle pointer after a full run, for debugging stuck schedules."""
    try:
        record = learner_store.require(user_id)
        resolved = plan_id or record.current_plan_id
        if not resolved:
            raise LookupError(f"Learner '{user_id}' has no active study plan.")
        plan = content_store.require_plan(resolved)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    config = record.config_for(plan.id, date.today())
    run = generator.generate(
        plan,
        record.routine,
        start_date=config.start_date,
        completed_goal_ids=record.progress.completed_goal_ids,
        level=record.level,
        is_paused=config.is_paused,
        exam_catalog=content_store.fetch_exam_catalog(),
        exam_attempts=content_store.attempts_for(record.id),
    )
    state: Dict[str, Any] = {
        "cursors": dict(run.state.cursors),
        "cycle_index": run.state.cycle_index,
        "item_index": run.state.item_index,
        "exhausted": run.state.exhausted,
    }
    return GenerationStatePayload(user_id=record.id, plan_id=plan.id, capped_days=run.capped_days, **state)


__all__ = ["router"]
