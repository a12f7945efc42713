from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

import pytest

_DATA_DIR = Path(tempfile.mkdtemp(prefix="studyplan-tests-"))

os.environ.setdefault("STUDYPLAN_PERSISTENCE_MODE", "legacy")
os.environ.setdefault("STUDYPLAN_DATA_DIR", str(_DATA_DIR))
os.environ.setdefault("STUDYPLAN_DATABASE_URL", "sqlite://")

from studyplan.cache import schedule_cache  # noqa: E402
from studyplan.telemetry import clear_listeners  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_state():
    schedule_cache.clear()
    yield
    schedule_cache.clear()
    clear_listeners()
    for path in _DATA_DIR.glob("*.json"):
        path.unlink()


def pytest_sessionfinish(session, exitstatus) -> None:  # pragma: no cover - test cleanup
    shutil.rmtree(_DATA_DIR, ignore_errors=True)
