"""Database-backed content repository: plans, mock-exam catalog and exam attempts."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import SimuladoAttemptModel, SimuladoModel, StudyPlanModel
from ..learner import Simulado, SimuladoAttempt, normalize_user_id
from ..study_plan import StudyPlan


class ContentRepository:
    def get_plan(self, session: Session, plan_id: str) -> Optional[StudyPlan]:
        model = session.get(StudyPlanModel, plan_id)
        if model is None:
            return None
        return StudyPlan.model_validate(model.document)

    def save_plan(self, session: Session, plan: StudyPlan) -> StudyPlan:
        model = session.get(StudyPlanModel, plan.id)
        if model is None:
            model = StudyPlanModel(id=plan.id)
            session.add(model)
        model.name = plan.name
        model.cycle_system = plan.cycle_system
        model.document = plan.model_dump(mode="json")
        session.flush()
        return plan

    def delete_plan(self, session: Session, plan_id: str) -> bool:
        model = session.get(StudyPlanModel, plan_id)
        if model is None:
            return False
        session.delete(model)
        session.flush()
        return True

    def list_simulados(self, session: Session) -> List[Simulado]:
        stmt = select(SimuladoModel).order_by(SimuladoModel.id.asc())
        return [
            Simulado(
                id=model.id,
                title=model.title,
                total_questions=model.total_questions,
                description=model.description,
            )
            for model in session.execute(stmt).scalars().all()
        ]

    def save_simulado(self, session: Session, simulado: Simulado) -> Simulado:
        model = session.get(SimuladoModel, simulado.id)
        if model is None:
            model = SimuladoModel(id=simulado.id)
            session.add(model)
        model.title = simulado.title
        model.total_questions = simulado.total_questions
        model.description = simulado.description
        session.flush()
        return simulado

    def attempts_for(self, session: Session, user_id: str) -> List[SimuladoAttempt]:
        normalized = normalize_user_id(user_id)
        stmt = (
            select(SimuladoAttemptModel)
            .where(SimuladoAttemptModel.user_id == normalized)
            .order_by(SimuladoAttemptModel.attempted_at.asc(), SimuladoAttemptModel.id.asc())
        )
        return [
            SimuladoAttempt(
                id=model.id,
                user_id=model.user_id,
                simulado_id=model.simulado_id,
                attempted_at=model.attempted_at,
            )
            for model in session.execute(stmt).scalars().all()
        ]

    def record_attempt(self, session: Session, attempt: SimuladoAttempt) -> SimuladoAttempt:
        model = session.get(SimuladoAttemptModel, attempt.id)
        if model is None:
            model = SimuladoAttemptModel(id=attempt.id)
            session.add(model)
        model.user_id = normalize_user_id(attempt.user_id)
        model.simulado_id = attempt.simulado_id
        model.attempted_at = attempt.attempted_at
        session.flush()
        return attempt


content = ContentRepository()

__all__ = ["ContentRepository", "content"]
