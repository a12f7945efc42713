"""Day packing behaviour of the schedule generator."""

from __future__ import annotations

import json
import logging
from datetime import timedelta

import pytest

from factories import MONDAY, discipline, learner, material, single_cycle_plan
from studyplan import schedule_generator
from studyplan.catalog import ContentStore
from studyplan.learner import LearnerStore, Routine, Simulado, SimuladoAttempt
from studyplan.plan_lifecycle import PlanLifecycleController
from studyplan.schedule_generator import (
    DEFAULT_GOAL_MINUTES,
    ScheduleGenerator,
    generate_schedule,
    generate_schedule_for_user,
)
from studyplan.study_plan import (
    Cycle,
    Discipline,
    DisciplineCycleItem,
    FolderCycleItem,
    ReviewGoal,
    SimuladoCycleItem,
    StudyPlan,
    Subject,
)
from studyplan.telemetry import TelemetryEvent, register_listener


def _generate(plan, routine=None, completed=(), **kwargs):
    return generate_schedule(
        plan,
        routine or Routine(days={"monday": 40}),
        MONDAY,
        completed,
        kwargs.pop("level", "beginner"),
        **kwargs,
    )


def _goal_ids(days):
    return {day: [item.goal_id for item in items] for day, items in days.items()}


def test_oversized_first_item_is_still_scheduled() -> None:
    plan = single_cycle_plan(discipline("law", ["g1", "g2"]))

    days = _generate(plan)

    assert _goal_ids(days) == {MONDAY: ["g1"], MONDAY + timedelta(days=7): ["g2"]}
    assert [item.minutes for items in days.values() for item in items] == [50, 50]


def test_completed_goals_are_skipped_without_spending_budget() -> None:
    plan = single_cycle_plan(discipline("law", ["g1", "g2"]))

    days = _generate(plan, completed=["g1"])

    assert _goal_ids(days) == {MONDAY: ["g2"]}


def test_many_completed_goals_do_not_block_later_work() -> None:
    plan = single_cycle_plan(discipline("law", ["g1", "g2", "g3", "g4"]))

    days = _generate(plan, completed=["g1", "g2", "g3"])

    assert _goal_ids(days) == {MONDAY: ["g4"]}


def test_generation_is_idempotent() -> None:
    plan = single_cycle_plan(discipline("law", ["a1", "a2", "a3"]), discipline("tax", ["b1", "b2"]))
    routine = Routine(days={"monday": 120, "wednesday": 60, "saturday": 200})

    first = _generate(plan, routine)
    second = _generate(plan, routine)

    assert {day: [item.model_dump() for item in items] for day, items in first.items()} == {
        day: [item.model_dump() for item in items] for day, items in second.items()
    }


def test_paused_plan_yields_empty_schedule() -> None:
    plan = single_cycle_plan(discipline("law", ["g1"]))
    assert _generate(plan, is_paused=True) == {}


def test_routine_without_positive_minutes_yields_empty_schedule() -> None:
    plan = single_cycle_plan(discipline("law", ["g1"]))
    routine = Routine(days={"monday": 0, "tuesday": -30, "friday": "soon", "sunday": None})
    assert _generate(plan, routine) == {}


def test_plan_without_cycles_yields_empty_schedule() -> None:
    plan = StudyPlan(id="p", name="Plan", disciplines=[discipline("law", ["g1"])])
    assert _generate(plan) == {}


def test_weekday_names_are_case_insensitive() -> None:
    plan = single_cycle_plan(discipline("law", ["g1"]))
    days = _generate(plan, Routine(days={"Monday": 40}))
    assert list(days) == [MONDAY]


def test_rest_days_have_no_entry() -> None:
    plan = single_cycle_plan(discipline("law", ["g1", "g2", "g3"]))
    routine = Routine(days={"monday": 50, "thursday": 50})

    days = _generate(plan, routine)

    assert list(days) == [MONDAY, MONDAY + timedelta(days=3), MONDAY + timedelta(days=7)]
    assert all(day.weekday() in (0, 3) for day in days)


def test_rotating_plan_wraps_and_keeps_discipline_cursors() -> None:
    plan = single_cycle_plan(discipline("law", ["a1", "a2"]), discipline("tax", ["b1", "b2"]))
    routine = Routine(days={"monday": 500})

    days = _generate(plan, routine)

    assert _goal_ids(days) == {MONDAY: ["a1", "b1", "a2", "b2"]}


def test_continuous_plan_stops_when_cycles_run_out() -> None:
    plan = single_cycle_plan(discipline("law", ["a1", "a2", "a3"]), cycle_system="continuous")
    routine = Routine(days={"monday": 500})

    days = _generate(plan, routine)

    assert _goal_ids(days) == {MONDAY: ["a1"]}


def test_subjects_count_schedules_several_goals_per_visit() -> None:
    plan = single_cycle_plan(
        discipline("law", ["a1", "a2", "a3"]),
        discipline("tax", ["b1"]),
        subjects_count=2,
    )
    routine = Routine(days={"monday": 500})

    days = _generate(plan, routine)

    assert _goal_ids(days)[MONDAY] == ["a1", "a2", "b1", "a3"]


def test_goals_follow_subject_then_goal_order() -> None:
    law = Discipline(
        id="law",
        name="Law",
        subjects=[
            Subject(id="s2", name="Second", order=2, goals=[ReviewGoal(id="late", title="Late")]),
            Subject(
                id="s1",
                name="First",
                order=1,
                goals=[ReviewGoal(id="b", title="B", order=2), ReviewGoal(id="a", title="A", order=1)],
            ),
        ],
    )
    plan = single_cycle_plan(law, subjects_count=3)

    days = _generate(plan, Routine(days={"monday": 500}))

    assert _goal_ids(days)[MONDAY] == ["a", "b", "late"]
    assert {item.minutes for item in days[MONDAY]} == {DEFAULT_GOAL_MINUTES}
    assert days[MONDAY][0].subject_label == "First"
    assert days[MONDAY][0].discipline_label == "Law"


def test_every_goal_is_scheduled_once_and_in_order() -> None:
    law = discipline("law", [f"a{index}" for index in range(12)])
    tax = discipline("tax", [f"b{index}" for index in range(7)])
    plan = single_cycle_plan(law, tax)
    routine = Routine(days={"monday": 70, "tuesday": 30, "friday": 120})

    days = _generate(plan, routine)
    emitted = [item.goal_id for day in sorted(days) for item in days[day]]

    assert sorted(emitted) == sorted([f"a{index}" for index in range(12)] + [f"b{index}" for index in range(7)])
    assert [goal for goal in emitted if goal.startswith("a")] == [f"a{index}" for index in range(12)]
    assert [goal for goal in emitted if goal.startswith("b")] == [f"b{index}" for index in range(7)]


def test_folder_items_expand_into_member_disciplines() -> None:
    plan = StudyPlan(
        id="p",
        name="Plan",
        disciplines=[
            discipline("civil", ["c1"], order=2, folder_id="law"),
            discipline("penal", ["p1"], order=1, folder_id="law"),
        ],
        cycles=[Cycle(id="c", items=[FolderCycleItem(folder_id="law")])],
    )

    days = _generate(plan, Routine(days={"monday": 500}))

    assert _goal_ids(days) == {MONDAY: ["p1", "c1"]}


def test_dangling_references_are_skipped() -> None:
    plan = StudyPlan(
        id="p",
        name="Plan",
        disciplines=[discipline("law", ["g1"])],
        cycles=[
            Cycle(
                id="c",
                items=[
                    DisciplineCycleItem(discipline_id="ghost"),
                    SimuladoCycleItem(simulado_id="missing-exam"),
                    FolderCycleItem(folder_id="missing-folder"),
                    DisciplineCycleItem(discipline_id="law"),
                ],
            )
        ],
    )

    days = _generate(plan)

    assert _goal_ids(days) == {MONDAY: ["g1"]}


def test_cycles_are_visited_by_order() -> None:
    plan = StudyPlan(
        id="p",
        name="Plan",
        disciplines=[discipline("law", ["a1"]), discipline("tax", ["b1"])],
        cycles=[
            Cycle(id="second", order=2, items=[DisciplineCycleItem(discipline_id="law")]),
            Cycle(id="first", order=1, items=[DisciplineCycleItem(discipline_id="tax")]),
        ],
    )

    days = _generate(plan, Routine(days={"monday": 500}))

    assert _goal_ids(days) == {MONDAY: ["b1", "a1"]}


def _exam_plan() -> StudyPlan:
    return StudyPlan(
        id="p",
        name="Plan",
        disciplines=[discipline("law", ["g1", "g2"])],
        cycles=[
            Cycle(
                id="c",
                items=[DisciplineCycleItem(discipline_id="law"), SimuladoCycleItem(simulado_id="exam-1")],
            )
        ],
    )


EXAM = Simulado(id="exam-1", title="Mock exam", total_questions=20, description="Full mock")


def test_exam_fills_the_rest_of_the_day() -> None:
    days = _generate(_exam_plan(), Routine(days={"monday": 120}), exam_catalog=[EXAM])

    first_day = days[MONDAY]
    assert [item.goal_id for item in first_day] == ["g1", "exam-1"]
    exam_item = first_day[1]
    assert exam_item.type == "SIMULADO"
    assert exam_item.minutes == 60
    assert exam_item.exam is not None and exam_item.exam.id == "exam-1"
    # Unattempted exams come back on every pass through the cycle.
    assert _goal_ids(days)[MONDAY + timedelta(days=7)] == ["g2", "exam-1"]


def test_exam_is_deferred_when_little_time_remains() -> None:
    days = _generate(_exam_plan(), Routine(days={"monday": 100}), exam_catalog=[EXAM])

    ids = _goal_ids(days)
    assert ids[MONDAY] == ["g1"]
    assert ids[MONDAY + timedelta(days=7)] == ["exam-1"]
    assert ids[MONDAY + timedelta(days=14)] == ["g2"]
    assert ids[MONDAY + timedelta(days=21)] == ["exam-1"]


def test_attempted_exam_is_never_scheduled() -> None:
    attempt = SimuladoAttempt(id="att-1", user_id="ana", simulado_id="exam-1")

    days = _generate(
        _exam_plan(),
        Routine(days={"monday": 500}),
        exam_catalog=[EXAM],
        exam_attempts=[attempt],
    )

    assert _goal_ids(days) == {MONDAY: ["g1", "g2"]}


def test_at_most_one_exam_per_day() -> None:
    plan = StudyPlan(
        id="p",
        name="Plan",
        cycles=[
            Cycle(
                id="c",
                items=[SimuladoCycleItem(simulado_id="exam-1"), SimuladoCycleItem(simulado_id="exam-2")],
            )
        ],
    )
    catalog = [EXAM, Simulado(id="exam-2", title="Second mock", total_questions=5)]

    days = _generate(plan, Routine(days={"monday": 500, "tuesday": 500}), exam_catalog=catalog)

    ids = _goal_ids(days)
    assert ids[MONDAY] == ["exam-1"]
    assert ids[MONDAY + timedelta(days=1)] == ["exam-2"]
    assert all(len(items) == 1 for items in days.values())


def test_iteration_cap_keeps_partial_day() -> None:
    plan = single_cycle_plan(discipline("law", ["a1", "a2"]), discipline("tax", ["b1", "b2"]))

    run = ScheduleGenerator(max_day_iterations=2).generate(
        plan,
        Routine(days={"monday": 1000}),
        start_date=MONDAY,
        completed_goal_ids=[],
        level="beginner",
    )

    assert run.capped_days[0] == MONDAY
    assert [item.goal_id for item in run.days[MONDAY]] == ["a1", "b1"]
    assert run.state.cursors == {"law": 2, "tax": 2}


def test_run_state_reports_final_cursors() -> None:
    plan = single_cycle_plan(discipline("law", ["a1", "a2", "a3"]))

    run = ScheduleGenerator().generate(
        plan,
        Routine(days={"monday": 40}),
        start_date=MONDAY,
        completed_goal_ids=["a2"],
        level="beginner",
    )

    assert run.state.cursors["law"] == 3
    assert run.state.exhausted is True
    assert run.capped_days == []


def test_oversized_goal_after_other_items_moves_to_next_study_day() -> None:
    law = Discipline(
        id="law",
        name="Law",
        subjects=[
            Subject(id="s1", name="Short", order=0, goals=[material("a1", pages=4)]),
            Subject(id="s2", name="Long", order=1, goals=[material("a2", pages=30)]),
        ],
    )
    plan = single_cycle_plan(law)

    days = _generate(plan, Routine(days={"monday": 60}))

    assert _goal_ids(days) == {MONDAY: ["a1"], MONDAY + timedelta(days=7): ["a2"]}
    assert [item.minutes for items in days.values() for item in items] == [20, 150]


def _two_cycle_plan(cycle_system: str) -> StudyPlan:
    return StudyPlan(
        id="plan-2",
        name="Two cycles",
        disciplines=[
            discipline("law", [f"a{index}" for index in range(6)]),
            discipline("tax", [f"b{index}" for index in range(8)], order=1),
        ],
        cycles=[
            Cycle(
                id="c1",
                order=0,
                items=[DisciplineCycleItem(discipline_id="law"), DisciplineCycleItem(discipline_id="tax")],
            ),
            Cycle(id="c2", order=1, items=[DisciplineCycleItem(discipline_id="tax", subjects_count=2)]),
        ],
        cycle_system=cycle_system,
    )


def _daily_states(plan: StudyPlan, day_count: int):
    routine = Routine(days={"monday": 120, "thursday": 60})
    states = []
    for horizon in range(1, day_count + 1):
        run = ScheduleGenerator(horizon_days=horizon).generate(
            plan, routine, start_date=MONDAY, completed_goal_ids=[], level="beginner"
        )
        states.append(run.state)
    return states


@pytest.mark.parametrize("cycle_system", ["rotating", "continuous"])
def test_discipline_cursors_never_move_backwards(cycle_system: str) -> None:
    states = _daily_states(_two_cycle_plan(cycle_system), 120)

    for earlier, later in zip(states, states[1:]):
        for discipline_id in ("law", "tax"):
            assert later.cursor(discipline_id) >= earlier.cursor(discipline_id)


def test_cycle_pointer_wraps_only_for_rotating_plans() -> None:
    rotating = _daily_states(_two_cycle_plan("rotating"), 120)
    continuous = _daily_states(_two_cycle_plan("continuous"), 120)

    assert any(later.cycle_index < earlier.cycle_index for earlier, later in zip(rotating, rotating[1:]))
    pointers = [(state.cycle_index, state.item_index) for state in continuous]
    assert pointers == sorted(pointers)
    assert continuous[-1].exhausted is True


@pytest.fixture()
def stores(tmp_path):
    learners = LearnerStore(legacy_path=tmp_path / "learners.json", mode="legacy")
    content = ContentStore(directory=tmp_path, mode="legacy")
    content.save_plan(single_cycle_plan(discipline("law", ["g1", "g2"])))
    learners.upsert(learner("ana"))
    return learners, content


def test_service_builds_and_caches_schedule(stores) -> None:
    learners, content = stores
    events: list[TelemetryEvent] = []
    register_listener(events.append)

    schedule = generate_schedule_for_user("ana", learners=learners, content=content)
    cached = generate_schedule_for_user("ana", learners=learners, content=content)

    assert schedule.plan_id == "plan-1"
    assert schedule.start_date == MONDAY
    assert schedule.item_count == 2
    assert schedule.total_minutes == 100
    assert cached.generated_at == schedule.generated_at
    assert [event.name for event in events] == ["schedule_generation"]
    assert events[0].payload["status"] == "success"
    assert events[0].payload["item_count"] == 2


def test_service_refresh_bypasses_cache(stores) -> None:
    learners, content = stores
    first = generate_schedule_for_user("ana", learners=learners, content=content)
    learners.upsert(learners.require("ana").model_copy(update={"level": "advanced"}))

    refreshed = generate_schedule_for_user("ana", learners=learners, content=content, refresh=True)

    assert first.total_minutes == 100
    assert refreshed.total_minutes == 20


def test_service_reports_paused_plans(stores) -> None:
    learners, content = stores
    learners.upsert(learner("ana", paused=True))

    schedule = generate_schedule_for_user("ana", learners=learners, content=content)

    assert schedule.is_paused is True
    assert schedule.days == {}


def test_service_raises_for_unknown_learner_or_plan(stores) -> None:
    learners, content = stores
    with pytest.raises(LookupError):
        generate_schedule_for_user("nobody", learners=learners, content=content)
    with pytest.raises(LookupError):
        generate_schedule_for_user("ana", "missing-plan", learners=learners, content=content)


def test_service_logs_capped_days(stores, monkeypatch, caplog) -> None:
    learners, content = stores
    monkeypatch.setattr(schedule_generator, "generator", ScheduleGenerator(max_day_iterations=1))

    with caplog.at_level(logging.WARNING, logger="studyplan.schedule_generator"):
        schedule = generate_schedule_for_user("ana", learners=learners, content=content)

    assert schedule.capped_days
    assert any("iteration cap" in record.getMessage() for record in caplog.records)


def test_window_slices_by_day_offset(stores) -> None:
    learners, content = stores
    schedule = generate_schedule_for_user("ana", learners=learners, content=content)

    assert list(schedule.window(0, 7).days) == [MONDAY]
    assert list(schedule.window(7, 7).days) == [MONDAY + timedelta(days=7)]
    assert schedule.window(1, 5).days == {}
    assert len(schedule.window().days) == 2


def test_unparsable_page_count_falls_back_to_placeholder(tmp_path, stores) -> None:
    learners, content = stores
    plans = json.loads((tmp_path / "plans.json").read_text(encoding="utf-8"))
    plans["plan-1"]["disciplines"][0]["subjects"][0]["goals"][0]["pages"] = "twelve"
    (tmp_path / "plans.json").write_text(json.dumps(plans), encoding="utf-8")

    schedule = generate_schedule_for_user("ana", learners=learners, content=content, today=MONDAY)

    first = schedule.days[MONDAY][0]
    assert first.goal_id == "g1"
    assert first.minutes == DEFAULT_GOAL_MINUTES
    assert [item.goal_id for item in schedule.days[MONDAY + timedelta(days=7)]] == ["g2"]


def test_progress_recorded_during_generation_is_not_hidden_by_cache(stores, monkeypatch) -> None:
    learners, content = stores
    controller = PlanLifecycleController(learners=learners, content=content, clock=lambda: MONDAY)
    fetch_catalog = content.fetch_exam_catalog
    completions: list[str] = []

    def fetch_catalog_and_complete_g1():
        if not completions:
            completions.append("g1")
            controller.complete_goal("ana", "plan-1", "g1")
        return fetch_catalog()

    monkeypatch.setattr(content, "fetch_exam_catalog", fetch_catalog_and_complete_g1)

    during = generate_schedule_for_user("ana", learners=learners, content=content, today=MONDAY)
    after = generate_schedule_for_user("ana", learners=learners, content=content, today=MONDAY)

    assert [item.goal_id for items in during.days.values() for item in items] == ["g1", "g2"]
    assert [item.goal_id for items in after.days.values() for item in items] == ["g2"]


def test_plan_without_config_rolls_forward_with_today(stores) -> None:
    learners, content = stores
    learners.upsert(learner("ana").model_copy(update={"plan_configs": {}}))

    first = generate_schedule_for_user("ana", learners=learners, content=content, today=MONDAY)
    same_day = generate_schedule_for_user("ana", learners=learners, content=content, today=MONDAY)
    next_week = generate_schedule_for_user(
        "ana", learners=learners, content=content, today=MONDAY + timedelta(days=7)
    )

    assert same_day.generated_at == first.generated_at
    assert first.start_date == MONDAY
    assert next_week.start_date == MONDAY + timedelta(days=7)
    assert list(next_week.days)[0] == MONDAY + timedelta(days=7)


def test_items_before_today_are_flagged_late(stores) -> None:
    learners, content = stores

    on_day_seven = generate_schedule_for_user(
        "ana", learners=learners, content=content, today=MONDAY + timedelta(days=7)
    )
    a_day_later = generate_schedule_for_user(
        "ana", learners=learners, content=content, today=MONDAY + timedelta(days=8)
    )

    assert [(item.goal_id, item.is_late) for items in on_day_seven.days.values() for item in items] == [
        ("g1", True),
        ("g2", False),
    ]
    assert [item.goal_id for item in on_day_seven.overdue] == ["g1"]
    assert [item.goal_id for item in a_day_later.overdue] == ["g1", "g2"]
    assert a_day_later.as_of == MONDAY + timedelta(days=8)
