from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import allure

from crew_orchestrator.orchestrator.models import Task, TaskStatus
from crew_orchestrator.orchestrator.presenter import (
    clean_title,
    normalize_title,
    present_tasks,
)

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Task List Presenter"),
]

_T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _task(task_id: str, title: str, minutes: int, **overrides) -> Task:
    created_at = _T0 + timedelta(minutes=minutes)
    task = Task(
        task_id=task_id,
        title=title,
        description="",
        created_at=created_at,
        updated_at=created_at,
    )
    return replace(task, **overrides)


def test_same_normalized_title_keeps_newest() -> None:
    tasks = [_task("t1", "Add login", 1), _task("t2", "add login!", 2)]

    assert [task.task_id for task in present_tasks(tasks)] == ["t2"]


def test_agent_prefix_is_ignored_for_dedup() -> None:
    tasks = [
        _task("t1", "[Frontend Agent] Build navbar", 1),
        _task("t2", "Build Navbar", 2),
        _task("t3", "[Architect Agent] build-navbar", 3),
    ]

    assert [task.task_id for task in present_tasks(tasks)] == ["t3"]


def test_output_is_newest_first() -> None:
    tasks = [_task("t1", "One", 1), _task("t3", "Three", 3), _task("t2", "Two", 2)]

    assert [task.task_id for task in present_tasks(tasks)] == ["t3", "t2", "t1"]


def test_same_agent_status_and_description_prefix_collapse() -> None:
    description = "Implement the authentication flow with refresh tokens and " + "x" * 10
    tasks = [
        _task("t1", "Auth flow", 1, assigned_agent_id="a1", description=description + " v1"),
        _task("t2", "Token refresh", 2, assigned_agent_id="a1", description=description + " v2"),
        _task("t3", "Auth for a2", 3, assigned_agent_id="a2", description=description),
        _task(
            "t4",
            "Done elsewhere",
            4,
            assigned_agent_id="a1",
            description=description,
            status=TaskStatus.COMPLETED,
        ),
    ]

    assert [task.task_id for task in present_tasks(tasks)] == ["t4", "t3", "t2"]


def test_empty_descriptions_do_not_collapse() -> None:
    tasks = [
        _task("t1", "First", 1, assigned_agent_id="a1"),
        _task("t2", "Second", 2, assigned_agent_id="a1"),
    ]

    assert len(present_tasks(tasks)) == 2


def test_input_is_not_mutated_and_blank_titles_dropped() -> None:
    tasks = [_task("t1", "Add login", 1), _task("t2", "  ", 2), _task("t3", "add login", 3)]
    before = [replace(task) for task in tasks]

    presented = present_tasks(tasks)

    assert tasks == before
    assert [task.task_id for task in presented] == ["t3"]


def test_title_helpers() -> None:
    assert clean_title("[Backend Agent]  Create API ") == "Create API"
    assert normalize_title("[Backend Agent] Create API!") == "createapi"
