"""Task lifecycle state machine over the session's task collection."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timedelta
from uuid import uuid4

from crew_orchestrator.common import utc_now
from crew_orchestrator.orchestrator.errors import (
    DependencyNotSatisfied,
    InvalidTransition,
    TaskBusy,
    UnknownTask,
)
from crew_orchestrator.orchestrator.models import Task, TaskPriority, TaskStatus


class TaskBoard:
    """Owns every task of a session and enforces its transitions.

    Transitions: ``pending -> in_progress -> {completed, failed}`` plus
    ``in_progress -> pending`` when a dispatch is abandoned. Terminal tasks are
    never edited again. Precondition errors are raised before any mutation.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._last_created_at: datetime | None = None

    def create(  # noqa: PLR0913
        self,
        *,
        title: str,
        description: str = "",
        priority: TaskPriority = TaskPriority.MEDIUM,
        assigned_agent_id: str | None = None,
        dependencies: Iterable[str] = (),
        task_id: str | None = None,
    ) -> Task:
        """Add a new pending task."""

        if not title.strip():
            raise ValueError("Task title must not be empty.")
        task_id = task_id or str(uuid4())
        if task_id in self._tasks:
            raise ValueError(f"Duplicate task id: {task_id}")
        dependency_ids = frozenset(dependencies)
        if task_id in dependency_ids:
            raise ValueError(f"Task {task_id} cannot depend on itself.")
        created_at = self._next_timestamp()
        task = Task(
            task_id=task_id,
            title=title.strip(),
            description=description.strip(),
            created_at=created_at,
            updated_at=created_at,
            assigned_agent_id=assigned_agent_id,
            priority=priority,
            dependencies=dependency_ids,
        )
        self._tasks[task_id] = task
        return replace(task)

    def get(self, task_id: str) -> Task:
        return replace(self._require(task_id))

    def tasks(self) -> tuple[Task, ...]:
        return tuple(replace(task) for task in self._tasks.values())

    def assign(self, task_id: str, agent_id: str) -> Task:
        """Bind a task to an agent; idempotent for the same agent."""

        task = self._require(task_id)
        if task.assigned_agent_id == agent_id:
            return replace(task)
        if task.status == TaskStatus.IN_PROGRESS:
            raise TaskBusy(
                task_id,
                f"Task {task_id} is in progress with agent {task.assigned_agent_id}",
            )
        if task.status.is_terminal:
            raise InvalidTransition(task_id, task.status.value, "reassign")
        task.assigned_agent_id = agent_id
        task.updated_at = utc_now()
        return replace(task)

    def restore_assignment(self, task_id: str, agent_id: str | None) -> Task:
        """Undo an assignment whose start never happened; only pending tasks change."""

        task = self._require(task_id)
        if task.status == TaskStatus.PENDING and task.assigned_agent_id != agent_id:
            task.assigned_agent_id = agent_id
            task.updated_at = utc_now()
        return replace(task)

    def unmet_dependencies(self, task_id: str) -> set[str]:
        """Dependency ids that are missing or not completed."""

        task = self._require(task_id)
        unmet: set[str] = set()
        for dependency_id in task.dependencies:
            dependency = self._tasks.get(dependency_id)
            if dependency is None or dependency.status != TaskStatus.COMPLETED:
                unmet.add(dependency_id)
        return unmet

    def check_can_begin(self, task_id: str, agent_id: str) -> None:
        """Validate a dispatch of ``task_id`` by ``agent_id`` without mutating."""

        task = self._require(task_id)
        if task.status == TaskStatus.IN_PROGRESS:
            raise TaskBusy(task_id)
        if task.status != TaskStatus.PENDING:
            raise InvalidTransition(task_id, task.status.value, "start")
        if task.assigned_agent_id not in {None, agent_id}:
            raise TaskBusy(
                task_id,
                f"Task {task_id} is assigned to agent {task.assigned_agent_id}",
            )
        unmet = self.unmet_dependencies(task_id)
        if unmet:
            raise DependencyNotSatisfied(task_id, unmet)
        running = self.in_progress_for(agent_id)
        if running is not None:
            raise TaskBusy(
                task_id,
                f"Agent {agent_id} is already executing task {running.task_id}",
            )

    def begin(self, task_id: str, agent_id: str) -> Task:
        """pending -> in_progress for the given agent."""

        self.check_can_begin(task_id, agent_id)
        task = self._tasks[task_id]
        task.assigned_agent_id = agent_id
        task.status = TaskStatus.IN_PROGRESS
        task.updated_at = utc_now()
        return replace(task)

    def complete(self, task_id: str) -> Task:
        task = self._require_status(task_id, "complete", TaskStatus.IN_PROGRESS)
        task.status = TaskStatus.COMPLETED
        task.updated_at = utc_now()
        return replace(task)

    def fail(self, task_id: str, reason: str) -> Task:
        task = self._require_status(task_id, "fail", TaskStatus.IN_PROGRESS)
        task.status = TaskStatus.FAILED
        task.failure_reason = reason
        task.updated_at = utc_now()
        return replace(task)

    def release(self, task_id: str) -> Task:
        """in_progress -> pending after a cancelled or failed dispatch."""

        task = self._require_status(task_id, "release", TaskStatus.IN_PROGRESS)
        task.status = TaskStatus.PENDING
        task.updated_at = utc_now()
        return replace(task)

    def in_progress_for(self, agent_id: str) -> Task | None:
        for task in self._tasks.values():
            if task.status == TaskStatus.IN_PROGRESS and task.assigned_agent_id == agent_id:
                return replace(task)
        return None

    def next_task_for(self, agent_id: str) -> Task | None:
        """Highest-priority, oldest ready pending task assigned to the agent."""

        ready = [
            task
            for task in self._tasks.values()
            if task.status == TaskStatus.PENDING
            and task.assigned_agent_id == agent_id
            and not self.unmet_dependencies(task.task_id)
        ]
        if not ready:
            return None
        ready.sort(key=lambda task: (-task.priority.rank, task.created_at))
        return replace(ready[0])

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise UnknownTask(task_id)
        return task

    def _require_status(self, task_id: str, action: str, *allowed: TaskStatus) -> Task:
        task = self._require(task_id)
        if task.status not in allowed:
            raise InvalidTransition(task_id, task.status.value, action)
        return task

    def _next_timestamp(self) -> datetime:
        # Strictly increasing creation times keep "newest first" ordering total.
        now = utc_now()
        if self._last_created_at is not None and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return now
