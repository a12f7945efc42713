"""Lazily built engine plus the session scope used by the learner and content stores."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, get_settings

_engine: Optional[Engine] = None
_sessions: Optional[sessionmaker[Session]] = None


def _engine_options(settings: Settings) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.database_echo, "future": True, "pool_pre_ping": True}
    if settings.database_url and settings.database_url.startswith("sqlite"):
        # API worker threads share the SQLite connection.
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


def get_engine() -> Engine:
    global _engine, _sessions
    if _engine is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("STUDYPLAN_DATABASE_URL must be configured before using the database.")
        _engine = create_engine(settings.database_url, **_engine_options(settings))
        _sessions = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
    return _engine


@contextmanager
def session_scope(*, commit: bool = True) -> Iterator[Session]:
    """Yield a session; commit on success (unless ``commit=False``), roll back and re-raise on error."""
    get_engine()
    assert _sessions is not None
    session = _sessions()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def create_schema() -> None:
    """Create the learner, plan, exam and audit tables without Alembic (SQLite and local runs)."""
    from . import models  # noqa: F401
    from .base import Base

    Base.metadata.create_all(get_engine())


def dispose_engine() -> None:
    global _engine, _sessions
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessions = None


__all__ = ["create_schema", "dispose_engine", "get_engine", "session_scope"]
