"""Structured events for schedule generation and learner state changes.

Every event is logged as a single ``TELEMETRY {json}`` line and handed to the
in-process listeners; the audit pipeline is one of them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, List, Optional

logger = logging.getLogger("studyplan.telemetry")

LIFECYCLE_EVENTS: FrozenSet[str] = frozenset(
    {
        "plan_paused",
        "plan_resumed",
        "plan_rescheduled",
        "plan_restarted",
        "active_plan_switched",
        "goal_completed",
        "review_completed",
        "routine_updated",
        "level_updated",
    }
)


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def user_id(self) -> Optional[str]:
        value = self.payload.get("user_id")
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @property
    def changes_learner_state(self) -> bool:
        return self.name in LIFECYCLE_EVENTS


Listener = Callable[[TelemetryEvent], None]

_listeners: List[Listener] = []
_lock = RLock()


def register_listener(listener: Listener) -> None:
    with _lock:
        _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    with _lock:
        if listener in _listeners:
            _listeners.remove(listener)


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def _plain(value: Any) -> Any:
    """Dates become ISO strings and sets become sorted lists, so payloads stay JSON-ready."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return value


def emit_event(name: str, **fields: Any) -> TelemetryEvent:
    event = TelemetryEvent(name=name, payload={key: _plain(value) for key, value in fields.items()})

    with _lock:
        listeners = list(_listeners)
    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    logger.info("TELEMETRY %s", json.dumps({"event": name, **event.payload}, default=str, sort_keys=True))
    return event


__all__ = [
    "LIFECYCLE_EVENTS",
    "Listener",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
    "unregister_listener",
]
