"""Upgrade the study-plan schema with Alembic and report what the tables hold.

Deploys run this before the API starts serving schedules. After the upgrade it
checks that every learner, plan, exam and audit table exists and logs the row
count of each, so an empty or half-migrated database is visible in the deploy
log.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, func, inspect, select

from studyplan.db import models  # noqa: F401
from studyplan.db.base import Base

LOGGER = logging.getLogger("studyplan.migrations")
BACKEND_ROOT = Path(__file__).resolve().parent.parent
URL_PLACEHOLDER = "%(STUDYPLAN_DATABASE_URL)s"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upgrade the study-plan database schema.")
    parser.add_argument(
        "--revision",
        default=os.getenv("STUDYPLAN_DB_MIGRATION_REVISION", "head"),
        help="Revision identifier to upgrade to (default: head).",
    )
    parser.add_argument(
        "--config",
        default=str(BACKEND_ROOT / "alembic.ini"),
        help="Path to alembic.ini configuration file.",
    )
    parser.add_argument(
        "--skip-verify",
        action="store_true",
        help="Do not check tables and row counts after the upgrade.",
    )
    return parser.parse_args(argv)


def get_alembic_config(config_path: str) -> Config:
    config = Config(config_path)
    config.set_main_option("script_location", str(BACKEND_ROOT / "alembic"))
    return config


def resolve_database_url(config: Config) -> str:
    url = config.get_main_option("sqlalchemy.url")
    if url and url != URL_PLACEHOLDER:
        return url
    env_url = os.getenv("STUDYPLAN_DATABASE_URL")
    if not env_url:
        raise RuntimeError("STUDYPLAN_DATABASE_URL must be set before running migrations.")
    config.set_main_option("sqlalchemy.url", env_url)
    return env_url


def verify_schema(database_url: str) -> Dict[str, int]:
    """Return row counts per study-plan table; raise if any table is missing."""
    engine = create_engine(database_url, future=True)
    try:
        present = set(inspect(engine).get_table_names())
        missing = sorted(name for name in Base.metadata.tables if name not in present)
        if missing:
            raise RuntimeError(f"Tables missing after upgrade: {', '.join(missing)}")
        counts: Dict[str, int] = {}
        with engine.connect() as connection:
            for name, table in sorted(Base.metadata.tables.items()):
                counts[name] = int(connection.execute(select(func.count()).select_from(table)).scalar_one())
    finally:
        engine.dispose()
    return counts


def run_migrations(revision: str, *, config: Optional[Config] = None, verify: bool = True) -> Dict[str, int]:
    config = config or get_alembic_config(str(BACKEND_ROOT / "alembic.ini"))
    database_url = resolve_database_url(config)
    LOGGER.info("Upgrading study-plan schema to %s", revision)
    command.upgrade(config, revision)
    if not verify:
        LOGGER.info("Migrations complete (verification skipped).")
        return {}
    counts = verify_schema(database_url)
    for name, count in counts.items():
        LOGGER.info("Table %s holds %d rows", name, count)
    if counts.get("study_plans", 0) == 0:
        LOGGER.warning("No study plans are stored yet; schedules will 404 until plans are imported.")
    return counts


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("STUDYPLAN_DB_MIGRATION_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv)
    try:
        run_migrations(args.revision, config=get_alembic_config(args.config), verify=not args.skip_verify)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Migration run failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
