"""Read-mostly access to study plans, the mock-exam catalog and exam attempts."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from .cache import schedule_cache
from .config import get_settings
from .db.session import session_scope
from .learner import Simulado, SimuladoAttempt, data_dir, normalize_user_id
from .study_plan import StudyPlan

logger = logging.getLogger(__name__)


if TYPE_CHECKING:
    from .repositories.content import ContentRepository


def _repo() -> "ContentRepository":
    from .repositories.content import content as repository

    return repository


class _DatabaseContentStore:
    def fetch_plan(self, plan_id: str) -> Optional[StudyPlan]:
        with session_scope(commit=False) as session:
            return _repo().get_plan(session, plan_id)

    def save_plan(self, plan: StudyPlan) -> StudyPlan:
        with session_scope() as session:
            return _repo().save_plan(session, plan)

    def delete_plan(self, plan_id: str) -> bool:
        with session_scope() as session:
            return _repo().delete_plan(session, plan_id)

    def fetch_exam_catalog(self) -> List[Simulado]:
        with session_scope(commit=False) as session:
            return _repo().list_simulados(session)

    def save_simulado(self, simulado: Simulado) -> Simulado:
        with session_scope() as session:
            return _repo().save_simulado(session, simulado)

    def attempts_for(self, user_id: str) -> List[SimuladoAttempt]:
        with session_scope(commit=False) as session:
            return _repo().attempts_for(session, user_id)

    def record_attempt(self, attempt: SimuladoAttempt) -> SimuladoAttempt:
        with session_scope() as session:
            return _repo().record_attempt(session, attempt)


class _LegacyContentStore:
    """JSON documents on disk: plans.json, simulados.json and simulado_attempts.json."""

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = directory or data_dir()
        self._lock = threading.RLock()

    def _read(self, name: str, default: Any) -> Any:
        path = self._directory / name
        if not path.exists():
            return default
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _write(self, name: str, payload: Any) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        with (self._directory / name).open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)

    def fetch_plan(self, plan_id: str) -> Optional[StudyPlan]:
        with self._lock:
            payload = self._read("plans.json", {}).get(plan_id)
        if payload is None:
            return None
        return StudyPlan.model_validate(payload)

    def save_plan(self, plan: StudyPlan) -> StudyPlan:
        with self._lock:
            plans: Dict[str, Any] = self._read("plans.json", {})
            plans[plan.id] = plan.model_dump(mode="json")
            self._write("plans.json", plans)
        return plan

    def delete_plan(self, plan_id: str) -> bool:
        with self._lock:
            plans: Dict[str, Any] = self._read("plans.json", {})
            if plan_id not in plans:
                return False
            del plans[plan_id]
            self._write("plans.json", plans)
        return True

    def fetch_exam_catalog(self) -> List[Simulado]:
        with self._lock:
            payload: Dict[str, Any] = self._read("simulados.json", {})
        catalog: List[Simulado] = []
        for key in sorted(payload):
            try:
                catalog.append(Simulado.model_validate(payload[key]))
            except Exception:  # noqa: BLE001
                logger.exception("Failed to parse legacy simulado %s", key)
        return catalog

    def save_simulado(self, simulado: Simulado) -> Simulado:
        with self._lock:
            catalog: Dict[str, Any] = self._read("simulados.json", {})
            catalog[simulado.id] = simulado.model_dump(mode="json")
            self._write("simulados.json", catalog)
        return simulado

    def attempts_for(self, user_id: str) -> List[SimuladoAttempt]:
        normalized = normalize_user_id(user_id)
        with self._lock:
            payload: List[Dict[str, Any]] = self._read("simulado_attempts.json", [])
        return [
            SimuladoAttempt.model_validate(entry)
            for entry in payload
            if entry.get("user_id") == normalized
        ]

    def record_attempt(self, attempt: SimuladoAttempt) -> SimuladoAttempt:
        stored = attempt.model_copy(update={"user_id": normalize_user_id(attempt.user_id)})
        with self._lock:
            payload: List[Dict[str, Any]] = self._read("simulado_attempts.json", [])
            payload = [entry for entry in payload if entry.get("id") != stored.id]
            payload.append(stored.model_dump(mode="json"))
            self._write("simulado_attempts.json", payload)
        return stored


class ContentStore:
    """Facade over plan/exam persistence; writes drop cached schedules that may depend on them."""

    def __init__(self, directory: Path | None = None, mode: Optional[str] = None) -> None:
        self._mode = mode or get_settings().persistence_mode
        self._db_store = _DatabaseContentStore()
        self._legacy_store = _LegacyContentStore(directory=directory)

    def _backend(self) -> Union[_DatabaseContentStore, _LegacyContentStore]:
        return self._legacy_store if self._mode == "legacy" else self._db_store

    def fetch_plan(self, plan_id: str) -> Optional[StudyPlan]:
        return self._backend().fetch_plan(plan_id)

    def require_plan(self, plan_id: str) -> StudyPlan:
        plan = self.fetch_plan(plan_id)
        if plan is None:
            raise LookupError(f"Study plan '{plan_id}' was not found.")
        return plan

    def save_plan(self, plan: StudyPlan) -> StudyPlan:
        stored = self._backend().save_plan(plan)
        schedule_cache.clear()
        return stored

    def delete_plan(self, plan_id: str) -> bool:
        removed = self._backend().delete_plan(plan_id)
        schedule_cache.clear()
        return removed

    def fetch_exam_catalog(self) -> List[Simulado]:
        return self._backend().fetch_exam_catalog()

    def save_simulado(self, simulado: Simulado) -> Simulado:
        stored = self._backend().save_simulado(simulado)
        schedule_cache.clear()
        return stored

    def attempts_for(self, user_id: str) -> List[SimuladoAttempt]:
        return self._backend().attempts_for(user_id)

    def record_attempt(self, attempt: SimuladoAttempt) -> SimuladoAttempt:
        stored = self._backend().record_attempt(attempt)
        schedule_cache.invalidate(stored.user_id)
        return stored


content_store = ContentStore()

__all__ = ["ContentStore", "content_store"]
