"""Database utilities for the study-plan backend."""

from .session import create_schema, dispose_engine, get_engine, session_scope

__all__ = ["create_schema", "dispose_engine", "get_engine", "session_scope"]
