"""Study-plan content tree: disciplines, subjects, goals, folders and cycles."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field

GoalType = Literal["LESSON", "MATERIAL", "QUESTION_SET", "STATUTE_READING", "SUMMARY", "REVIEW"]
CycleSystem = Literal["continuous", "rotating"]


def _lenient_number(value: Any) -> Optional[float]:
    """Map sizing inputs that are not finite non-negative numbers to ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number) or number < 0:
        return None
    return number


Sizing = Annotated[Optional[float], BeforeValidator(_lenient_number)]


class SubLesson(BaseModel):
    """Single video/class inside a LESSON goal."""

    id: str
    title: str = ""
    minutes: Sizing = None
    link: Optional[str] = None


class _GoalBase(BaseModel):
    id: str
    title: str
    order: int = 0
    description: Optional[str] = None


class LessonGoal(_GoalBase):
    type: Literal["LESSON"] = "LESSON"
    sub_lessons: List[SubLesson] = Field(default_factory=list)


class MaterialGoal(_GoalBase):
    type: Literal["MATERIAL"] = "MATERIAL"
    pages: Sizing = None


class QuestionSetGoal(_GoalBase):
    type: Literal["QUESTION_SET"] = "QUESTION_SET"
    pages: Sizing = None


class StatuteReadingGoal(_GoalBase):
    """Reading of the bare statute text, optionally repeated `multiplier` times."""

    type: Literal["STATUTE_READING"] = "STATUTE_READING"
    pages: Sizing = None
    multiplier: Sizing = 1
    articles: Optional[str] = None


class SummaryGoal(_GoalBase):
    type: Literal["SUMMARY"] = "SUMMARY"
    manual_minutes: Sizing = None


class ReviewGoal(_GoalBase):
    type: Literal["REVIEW"] = "REVIEW"


Goal = Annotated[
    Union[LessonGoal, MaterialGoal, QuestionSetGoal, StatuteReadingGoal, SummaryGoal, ReviewGoal],
    Field(discriminator="type"),
]


class Subject(BaseModel):
    id: str
    name: str
    order: int = 0
    goals: List[Goal] = Field(default_factory=list)


class Discipline(BaseModel):
    id: str
    name: str
    order: int = 0
    folder_id: Optional[str] = None
    subjects: List[Subject] = Field(default_factory=list)


class Folder(BaseModel):
    """Authoring-time grouping of disciplines; only meaningful inside cycles."""

    id: str
    name: str
    order: int = 0


class DisciplineCycleItem(BaseModel):
    kind: Literal["discipline"] = "discipline"
    discipline_id: str
    subjects_count: int = Field(default=1, ge=1)


class FolderCycleItem(BaseModel):
    kind: Literal["folder"] = "folder"
    folder_id: str
    subjects_count: int = Field(default=1, ge=1)


class SimuladoCycleItem(BaseModel):
    kind: Literal["simulado"] = "simulado"
    simulado_id: str


CycleItem = Annotated[
    Union[DisciplineCycleItem, FolderCycleItem, SimuladoCycleItem],
    Field(discriminator="kind"),
]


class Cycle(BaseModel):
    id: str
    name: str = ""
    order: int = 0
    items: List[CycleItem] = Field(default_factory=list)


class StudyPlan(BaseModel):
    id: str
    name: str
    folders: List[Folder] = Field(default_factory=list)
    disciplines: List[Discipline] = Field(default_factory=list)
    cycles: List[Cycle] = Field(default_factory=list)
    cycle_system: CycleSystem = "rotating"

    def ordered_cycles(self) -> List[Cycle]:
        return sorted(self.cycles, key=lambda cycle: cycle.order)

    def discipline_by_id(self) -> Dict[str, Discipline]:
        return {discipline.id: discipline for discipline in self.disciplines}

    def iter_goals(self) -> Iterator[Goal]:
        for discipline in self.disciplines:
            for subject in discipline.subjects:
                yield from subject.goals

    def goal_ids(self) -> set[str]:
        return {goal.id for goal in self.iter_goals()}


@dataclass(frozen=True)
class PlannedGoal:
    """A goal annotated with where it sits in its discipline's flattened sequence."""

    goal: Goal
    discipline_id: str
    discipline_name: str
    subject_id: str
    subject_name: str
    position: int

    @property
    def goal_id(self) -> str:
        return self.goal.id


def flatten_discipline(discipline: Discipline) -> List[PlannedGoal]:
    """Subjects in order, each subject's goals in order; ties keep insertion order."""
    planned: List[PlannedGoal] = []
    for subject in sorted(discipline.subjects, key=lambda entry: entry.order):
        for goal in sorted(subject.goals, key=lambda entry: entry.order):
            planned.append(
                PlannedGoal(
                    goal=goal,
                    discipline_id=discipline.id,
                    discipline_name=discipline.name,
                    subject_id=subject.id,
                    subject_name=subject.name,
                    position=len(planned),
                )
            )
    return planned


def flatten_plan(plan: StudyPlan) -> Dict[str, List[PlannedGoal]]:
    return {discipline.id: flatten_discipline(discipline) for discipline in plan.disciplines}


__all__ = [
    "Cycle",
    "CycleItem",
    "CycleSystem",
    "Discipline",
    "DisciplineCycleItem",
    "Folder",
    "FolderCycleItem",
    "Goal",
    "GoalType",
    "LessonGoal",
    "MaterialGoal",
    "PlannedGoal",
    "QuestionSetGoal",
    "ReviewGoal",
    "SimuladoCycleItem",
    "StatuteReadingGoal",
    "StudyPlan",
    "Subject",
    "SubLesson",
    "SummaryGoal",
    "flatten_discipline",
    "flatten_plan",
]
