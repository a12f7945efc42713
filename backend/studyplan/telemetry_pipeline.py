"""Telemetry listener that persists learner state changes as audit rows."""

from __future__ import annotations

import logging

from .config import get_settings
from .db.session import session_scope
from .repositories.learners import learners
from .telemetry import TelemetryEvent, register_listener, unregister_listener

logger = logging.getLogger(__name__)


def _persist_event(event: TelemetryEvent) -> None:
    if not event.changes_learner_state:
        return
    if get_settings().persistence_mode != "database":
        return
    user_id = event.user_id
    if user_id is None:
        return
    try:
        with session_scope() as session:
            learners.record_event(session, user_id, event.name, event.payload)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to persist telemetry event %s for user_id=%s", event.name, user_id)


def install() -> None:
    """Attach the audit listener (idempotent)."""
    unregister_listener(_persist_event)
    register_listener(_persist_event)


def uninstall() -> None:
    unregister_listener(_persist_event)


__all__ = ["install", "uninstall"]
