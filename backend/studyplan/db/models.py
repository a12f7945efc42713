"""ORM models backing the study-plan persistence layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class LearnerModel(TimestampMixin, Base):
    __tablename__ = "learners"
    __table_args__ = (Index("ix_learners_user_id", "user_id", unique=True),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(Text, default="", nullable=False)
    level: Mapped[str] = mapped_column(String(16), default="beginner", nullable=False)
    routine: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    completed_goal_ids: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    completed_review_ids: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    total_study_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    plan_study_seconds: Mapped[dict[str, int]] = mapped_column(JSONType, default=dict, nullable=False)
    plan_configs: Mapped[dict[str, dict]] = mapped_column(JSONType, default=dict, nullable=False)
    current_plan_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


class StudyPlanModel(TimestampMixin, Base):
    """Plans are stored as whole JSON documents; the core only ever reads them whole."""

    __tablename__ = "study_plans"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    cycle_system: Mapped[str] = mapped_column(String(16), default="rotating", nullable=False)
    document: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)


class SimuladoModel(TimestampMixin, Base):
    __tablename__ = "simulados"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)


class SimuladoAttemptModel(Base):
    __tablename__ = "simulado_attempts"
    __table_args__ = (Index("ix_simulado_attempts_user", "user_id"),)

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    simulado_id: Mapped[str] = mapped_column(String(128), nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


class PersistenceAuditEventModel(Base):
    __tablename__ = "persistence_audit_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    learner_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("learners.id", ondelete="SET NULL"), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    actor: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    learner: Mapped[LearnerModel | None] = relationship()


__all__ = [
    "LearnerModel",
    "PersistenceAuditEventModel",
    "SimuladoAttemptModel",
    "SimuladoModel",
    "StudyPlanModel",
]
