"""Database-backed learner repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import LearnerModel, PersistenceAuditEventModel
from ..learner import LearnerRecord, PlanConfig, Routine, UserProgress, normalize_user_id


class LearnerRepository:
    """Persistence helper that mirrors the legacy JSON store API."""

    def get(self, session: Session, user_id: str) -> LearnerRecord | None:
        model = self._get_model(session, user_id)
        if model is None:
            return None
        return self._to_domain(model)

    def upsert(self, session: Session, record: LearnerRecord) -> LearnerRecord:
        normalized = normalize_user_id(record.id)
        model = self._get_model(session, normalized)
        created = model is None
        if model is None:
            model = LearnerModel(user_id=normalized)
            session.add(model)

        self._apply_record(model, record)
        session.flush()
        self._record_audit(
            session,
            model.id,
            "learner_create" if created else "learner_update",
            {"user_id": normalized},
        )
        return self._to_domain(model)

    def delete(self, session: Session, user_id: str) -> bool:
        model = self._get_model(session, user_id)
        if model is None:
            return False
        session.delete(model)
        session.flush()
        self._record_audit(session, None, "learner_delete", {"user_id": normalize_user_id(user_id)})
        return True

    def record_event(self, session: Session, user_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        model = self._get_model(session, user_id)
        self._record_audit(session, model.id if model else None, event_type, payload)
        session.flush()

    def recent_events(self, session: Session, user_id: str, limit: int = 50) -> list[Dict[str, Any]]:
        model = self._get_model(session, user_id)
        if model is None:
            return []
        stmt = (
            select(PersistenceAuditEventModel)
            .where(PersistenceAuditEventModel.learner_id == model.id)
            .order_by(PersistenceAuditEventModel.created_at.desc())
            .limit(limit)
        )
        return [
            {
                "event_type": event.event_type,
                "payload": event.payload,
                "actor": event.actor,
                "created_at": event.created_at,
            }
            for event in session.execute(stmt).scalars().all()
        ]

    def _get_model(self, session: Session, user_id: str) -> LearnerModel | None:
        normalized = normalize_user_id(user_id)
        stmt = select(LearnerModel).where(LearnerModel.user_id == normalized)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _apply_record(model: LearnerModel, record: LearnerRecord) -> None:
        model.name = record.name
        model.level = record.level
        model.routine = dict(record.routine.days)
        model.completed_goal_ids = list(record.progress.completed_goal_ids)
        model.completed_review_ids = list(record.progress.completed_review_ids)
        model.total_study_seconds = record.progress.total_study_seconds
        model.plan_study_seconds = dict(record.progress.plan_study_seconds)
        model.plan_configs = {
            plan_id: config.model_dump(mode="json") for plan_id, config in record.plan_configs.items()
        }
        model.current_plan_id = record.current_plan_id
        model.last_updated = datetime.now(timezone.utc)

    @staticmethod
    def _to_domain(model: LearnerModel) -> LearnerRecord:
        return LearnerRecord(
            id=model.user_id,
            name=model.name,
            level=model.level,  # type: ignore[arg-type]
            routine=Routine(days=dict(model.routine or {})),
            progress=UserProgress(
                completed_goal_ids=list(model.completed_goal_ids or []),
                completed_review_ids=list(model.completed_review_ids or []),
                total_study_seconds=model.total_study_seconds or 0,
                plan_study_seconds=dict(model.plan_study_seconds or {}),
            ),
            plan_configs={
                plan_id: PlanConfig.model_validate(payload)
                for plan_id, payload in (model.plan_configs or {}).items()
            },
            current_plan_id=model.current_plan_id,
            last_updated=model.last_updated,
        )

    @staticmethod
    def _record_audit(session: Session, learner_id, event_type: str, payload: Dict[str, Any]) -> None:
        session.add(
            PersistenceAuditEventModel(
                learner_id=learner_id,
                event_type=event_type,
                payload=payload,
                actor="system",
            )
        )


learners = LearnerRepository()

__all__ = ["LearnerRepository", "learners"]
