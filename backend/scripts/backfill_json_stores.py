"""Import the legacy JSON stores (learners, plans, simulados, attempts) into the database."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError

from studyplan.db.session import create_schema, session_scope
from studyplan.learner import LearnerRecord, Simulado, SimuladoAttempt, data_dir
from studyplan.repositories.content import content
from studyplan.repositories.learners import learners
from studyplan.study_plan import StudyPlan


logger = logging.getLogger("backfill")


def _load_json(path: Path) -> Any:
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


def _entries(path: Path, label: str) -> Iterable[Any]:
    if not path.exists():
        logger.info("No legacy %s found at %s", label, path)
        return []
    payload = _load_json(path)
    return list(payload.values()) if isinstance(payload, dict) else list(payload)


def backfill_learners(path: Path) -> int:
    imported = 0
    with session_scope() as session:
        for entry in _entries(path, "learners"):
            try:
                record = LearnerRecord.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping invalid learner payload: %s", exc)
                continue
            learners.upsert(session, record)
            imported += 1
    logger.info("Imported %d learners", imported)
    return imported


def backfill_plans(path: Path) -> int:
    imported = 0
    with session_scope() as session:
        for entry in _entries(path, "plans"):
            try:
                plan = StudyPlan.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping invalid plan payload: %s", exc)
                continue
            content.save_plan(session, plan)
            imported += 1
    logger.info("Imported %d study plans", imported)
    return imported


def backfill_simulados(path: Path) -> int:
    imported = 0
    with session_scope() as session:
        for entry in _entries(path, "simulados"):
            try:
                simulado = Simulado.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping invalid simulado payload: %s", exc)
                continue
            content.save_simulado(session, simulado)
            imported += 1
    logger.info("Imported %d simulados", imported)
    return imported


def backfill_attempts(path: Path) -> int:
    imported = 0
    with session_scope() as session:
        for entry in _entries(path, "simulado attempts"):
            try:
                attempt = SimuladoAttempt.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping invalid attempt payload: %s", exc)
                continue
            content.record_attempt(session, attempt)
            imported += 1
    logger.info("Imported %d simulado attempts", imported)
    return imported


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    source = data_dir()
    parser = argparse.ArgumentParser(description="Backfill legacy JSON stores into the database.")
    parser.add_argument("--learners", type=Path, default=source / "learners.json")
    parser.add_argument("--plans", type=Path, default=source / "plans.json")
    parser.add_argument("--simulados", type=Path, default=source / "simulados.json")
    parser.add_argument("--attempts", type=Path, default=source / "simulado_attempts.json")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args(argv)
    create_schema()
    total_plans = backfill_plans(args.plans)
    total_simulados = backfill_simulados(args.simulados)
    total_learners = backfill_learners(args.learners)
    total_attempts = backfill_attempts(args.attempts)
    logger.info(
        "Backfill completed: %d plans, %d simulados, %d learners, %d attempts",
        total_plans,
        total_simulados,
        total_learners,
        total_attempts,
    )


if __name__ == "__main__":
    main()
