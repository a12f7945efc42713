"""Turns authored cycles into the concrete discipline/exam sequence the scheduler walks."""

from __future__ import annotations

from typing import List, Union

from .study_plan import (
    Cycle,
    DisciplineCycleItem,
    FolderCycleItem,
    SimuladoCycleItem,
    StudyPlan,
)

ExpandedCycleItem = Union[DisciplineCycleItem, SimuladoCycleItem]


def expand_cycle(cycle: Cycle, plan: StudyPlan) -> List[ExpandedCycleItem]:
    """Replace folder items with one item per member discipline, in discipline order.

    Folder membership is read from the plan on every call so that authoring
    changes are always reflected; the expansion is never stored.
    """
    expanded: List[ExpandedCycleItem] = []
    for item in cycle.items:
        if isinstance(item, FolderCycleItem):
            members = sorted(
                (discipline for discipline in plan.disciplines if discipline.folder_id == item.folder_id),
                key=lambda discipline: discipline.order,
            )
            expanded.extend(
                DisciplineCycleItem(discipline_id=discipline.id, subjects_count=item.subjects_count)
                for discipline in members
            )
        else:
            expanded.append(item)
    return expanded


__all__ = ["ExpandedCycleItem", "expand_cycle"]
