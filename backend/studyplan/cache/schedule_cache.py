"""Process-local cache of generated schedules, keyed by learner and plan."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Dict, Optional, Tuple

CacheToken = Tuple[int, int]


def _normalize_key(user_id: str, plan_id: str) -> Tuple[str, str]:
    learner = user_id.strip()
    plan = plan_id.strip()
    if not learner or not plan:
        raise ValueError("Learner id and plan id are required when caching schedules.")
    return learner, plan


@dataclass
class _ScheduleEntry:
    schedule: Any
    cached_at: datetime


def _copy(schedule: Any) -> Any:
    if hasattr(schedule, "model_copy"):
        return schedule.model_copy(deep=True)
    return schedule


class ScheduleCache:
    """Holds the last generated schedule until the learner's state changes.

    Callers take a :meth:`token` before reading the learner and pass it to
    :meth:`set`; a schedule built from state that was invalidated in the
    meantime is then discarded instead of cached.
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], _ScheduleEntry] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = RLock()

    def token(self, user_id: str) -> CacheToken:
        with self._lock:
            return self._epoch, self._generations.get(user_id.strip(), 0)

    def get(self, user_id: str, plan_id: str) -> Optional[Any]:
        key = _normalize_key(user_id, plan_id)
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        return _copy(entry.schedule)

    def set(self, user_id: str, plan_id: str, schedule: Any, *, token: Optional[CacheToken] = None) -> bool:
        key = _normalize_key(user_id, plan_id)
        with self._lock:
            if token is not None and token != self.token(key[0]):
                return False
            self._entries[key] = _ScheduleEntry(
                schedule=_copy(schedule),
                cached_at=datetime.now(timezone.utc),
            )
        return True

    def invalidate(self, user_id: str) -> None:
        """Drop every cached plan schedule for the learner."""
        learner = user_id.strip()
        with self._lock:
            self._generations[learner] = self._generations.get(learner, 0) + 1
            for key in [key for key in self._entries if key[0] == learner]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


schedule_cache = ScheduleCache()

__all__ = ["CacheToken", "ScheduleCache", "schedule_cache"]
