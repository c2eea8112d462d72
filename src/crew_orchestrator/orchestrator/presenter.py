"""Deduplicate and order the task stream for display."""

from __future__ import annotations

import re
from collections.abc import Iterable

from crew_orchestrator.orchestrator.models import Task

DESCRIPTION_PREFIX_CHARS = 50

_AGENT_PREFIX = re.compile(r"^\s*\[[^\]]+\]\s*")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def clean_title(title: str) -> str:
    """Title without the bracketed agent-name prefix."""

    return _AGENT_PREFIX.sub("", title, count=1).strip()


def normalize_title(title: str) -> str:
    """Dedup key: prefix stripped, lower-case alphanumerics only."""

    return _NON_ALNUM.sub("", clean_title(title).lower())


def present_tasks(tasks: Iterable[Task]) -> list[Task]:
    """Newest-first task list with near-duplicates collapsed.

    Tasks sharing a normalized title keep only the newest one. Distinct titles
    are also collapsed when assignee, status and the first 50 description
    characters all match. The input collection is never mutated.
    """

    newest_first = sorted(
        (task for task in tasks if task.title.strip()),
        key=lambda task: (task.created_at, task.task_id),
        reverse=True,
    )

    seen_titles: set[str] = set()
    by_title: list[Task] = []
    for task in newest_first:
        key = normalize_title(task.title)
        if key in seen_titles:
            continue
        seen_titles.add(key)
        by_title.append(task)

    seen_shapes: set[tuple[str | None, str, str]] = set()
    presented: list[Task] = []
    for task in by_title:
        prefix = task.description[:DESCRIPTION_PREFIX_CHARS]
        if prefix:
            shape = (task.assigned_agent_id, task.status.value, prefix)
            if shape in seen_shapes:
                continue
            seen_shapes.add(shape)
        presented.append(task)
    return presented
