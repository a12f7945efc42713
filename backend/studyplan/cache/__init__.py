"""In-memory caches shared across backend services."""

from .schedule_cache import ScheduleCache, schedule_cache

__all__ = ["schedule_cache", "ScheduleCache"]
