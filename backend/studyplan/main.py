import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import telemetry_pipeline
from .config import Settings, get_settings
from .db.session import get_engine
from .developer_routes import router as developer_router
from .logging_config import configure_logging
from .plan_routes import router as plan_router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Study Plan Scheduler", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(plan_router)

settings_snapshot = get_settings()
if settings_snapshot.debug_endpoints:
    app.include_router(developer_router)
logger.info("Backend starting with persistence mode: %s", settings_snapshot.persistence_mode)
logger.info("Database URL configured: %s", bool(settings_snapshot.database_url))
telemetry_pipeline.install()


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "persistence": settings.persistence_mode}


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    if settings.persistence_mode != "database":
        return {"status": "skipped", "persistence": settings.persistence_mode}
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except (RuntimeError, SQLAlchemyError) as exc:
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is unavailable.",
        ) from exc
    return {"status": "ok", "persistence": settings.persistence_mode, "pool": engine.pool.status()}
