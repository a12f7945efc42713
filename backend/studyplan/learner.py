"""Learner state models (routine, progress, per-plan config) and the learner store."""

from __future__ import annotations

import json
import logging
import math
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .cache import schedule_cache
from .config import get_settings
from .db.session import session_scope
from .study_plan import GoalType

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_Date = date
UserLevel = Literal["beginner", "intermediate", "advanced"]


if TYPE_CHECKING:
    from .repositories.learners import LearnerRepository


def _repo() -> "LearnerRepository":
    from .repositories.learners import learners as repository

    return repository


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_user_id(value: str) -> str:
    normalized = value.strip() if isinstance(value, str) else ""
    if not normalized:
        raise ValueError("Learner id cannot be empty.")
    return normalized


def data_dir() -> Path:
    configured = get_settings().data_dir
    return Path(configured) if configured else DEFAULT_DATA_DIR


class Routine(BaseModel):
    """Weekly time budget: weekday name to available minutes (0 = rest day)."""

    days: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("days", mode="before")
    @classmethod
    def _lowercase_weekdays(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(key).strip().lower(): minutes for key, minutes in value.items()}
        return value

    def minutes_for(self, day: date) -> int:
        return self.minutes_for_weekday(WEEKDAYS[day.weekday()])

    def minutes_for_weekday(self, weekday: str) -> int:
        raw = self.days.get(weekday)
        if isinstance(raw, bool):
            return 0
        try:
            minutes = float(raw)
        except (TypeError, ValueError):
            return 0
        if math.isnan(minutes) or math.isinf(minutes) or minutes <= 0:
            return 0
        return int(minutes)

    def has_study_days(self) -> bool:
        return any(self.minutes_for_weekday(weekday) > 0 for weekday in WEEKDAYS)


class UserProgress(BaseModel):
    completed_goal_ids: List[str] = Field(default_factory=list)
    completed_review_ids: List[str] = Field(default_factory=list)
    total_study_seconds: int = Field(default=0, ge=0)
    plan_study_seconds: Dict[str, int] = Field(default_factory=dict)


class PlanConfig(BaseModel):
    """Anchor date for day 0 of the generated schedule plus the pause flag."""

    start_date: date
    is_paused: bool = False


class LearnerRecord(BaseModel):
    id: str
    name: str = ""
    level: UserLevel = "beginner"
    routine: Routine = Field(default_factory=Routine)
    progress: UserProgress = Field(default_factory=UserProgress)
    plan_configs: Dict[str, PlanConfig] = Field(default_factory=dict)
    current_plan_id: Optional[str] = None
    last_updated: datetime = Field(default_factory=_now)

    def config_for(self, plan_id: str, today: date) -> PlanConfig:
        existing = self.plan_configs.get(plan_id)
        if existing is not None:
            return existing
        return PlanConfig(start_date=today, is_paused=False)


class Simulado(BaseModel):
    """Mock exam scheduled and attempted as a single unit."""

    id: str
    title: str
    total_questions: int = Field(default=0, ge=0)
    description: str = ""


class SimuladoAttempt(BaseModel):
    id: str
    user_id: str
    simulado_id: str
    attempted_at: datetime = Field(default_factory=_now)


class ScheduledItem(BaseModel):
    """One calendar entry emitted by the schedule generator."""

    date: _Date
    goal_id: str
    type: Union[GoalType, Literal["SIMULADO"]]
    title: str
    discipline_id: Optional[str] = None
    discipline_label: str = ""
    subject_label: str = ""
    minutes: int = Field(default=0, ge=0)
    completed: bool = False
    is_late: bool = False
    exam: Optional[Simulado] = None


class _DatabaseLearnerStore:
    """Learner persistence through the SQLAlchemy repository."""

    def get(self, user_id: str) -> Optional[LearnerRecord]:
        with session_scope(commit=False) as session:
            return _repo().get(session, user_id)

    def upsert(self, record: LearnerRecord) -> LearnerRecord:
        with session_scope() as session:
            return _repo().upsert(session, record)

    def delete(self, user_id: str) -> bool:
        with session_scope() as session:
            return _repo().delete(session, user_id)


class _LegacyLearnerStore:
    """JSON-file persistence used for offline mode and tests."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or data_dir() / "learners.json"
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> Dict[str, LearnerRecord]:
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        records: Dict[str, LearnerRecord] = {}
        for key, payload in raw.items():
            try:
                records[key] = LearnerRecord.model_validate(payload)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to parse legacy learner record %s", key)
        return records

    def _write_unlocked(self, records: Dict[str, LearnerRecord]) -> None:
        payload = {user_id: record.model_dump(mode="json") for user_id, record in records.items()}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)

    def get(self, user_id: str) -> Optional[LearnerRecord]:
        normalized = normalize_user_id(user_id)
        with self._lock:
            record = self._load_unlocked().get(normalized)
            return record.model_copy(deep=True) if record else None

    def upsert(self, record: LearnerRecord) -> LearnerRecord:
        clone = record.model_copy(deep=True)
        clone.id = normalize_user_id(clone.id)
        clone.last_updated = _now()
        with self._lock:
            records = self._load_unlocked()
            records[clone.id] = clone
            self._write_unlocked(records)
        return clone.model_copy(deep=True)

    def delete(self, user_id: str) -> bool:
        normalized = normalize_user_id(user_id)
        with self._lock:
            records = self._load_unlocked()
            if normalized not in records:
                return False
            del records[normalized]
            self._write_unlocked(records)
        return True


class LearnerStore:
    """Facade that delegates to database or legacy persistence based on configuration."""

    def __init__(self, legacy_path: Path | None = None, mode: Optional[str] = None) -> None:
        self._mode = mode or get_settings().persistence_mode
        self._db_store = _DatabaseLearnerStore()
        self._legacy_store = _LegacyLearnerStore(path=legacy_path)

    @property
    def mode(self) -> str:
        return self._mode

    def _backend(self) -> Union[_DatabaseLearnerStore, _LegacyLearnerStore]:
        return self._legacy_store if self._mode == "legacy" else self._db_store

    def get(self, user_id: str) -> Optional[LearnerRecord]:
        return self._backend().get(user_id)

    def require(self, user_id: str) -> LearnerRecord:
        record = self.get(user_id)
        if record is None:
            raise LookupError(f"Learner '{user_id}' was not found.")
        return record

    def upsert(self, record: LearnerRecord) -> LearnerRecord:
        stored = self._backend().upsert(record)
        schedule_cache.invalidate(stored.id)
        return stored

    def delete(self, user_id: str) -> bool:
        removed = self._backend().delete(user_id)
        schedule_cache.invalidate(user_id)
        return removed


learner_store = LearnerStore()

__all__ = [
    "LearnerRecord",
    "LearnerStore",
    "PlanConfig",
    "Routine",
    "ScheduledItem",
    "Simulado",
    "SimuladoAttempt",
    "UserLevel",
    "UserProgress",
    "WEEKDAYS",
    "data_dir",
    "learner_store",
    "normalize_user_id",
]
