"""Error taxonomy for orchestration, execution and file store failures."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from crew_orchestrator.orchestrator.models import FailureClass

if TYPE_CHECKING:
    from crew_orchestrator.orchestrator.failure_classifier import BackendFailureClassification


class OrchestrationError(RuntimeError):
    """Base class for all orchestration errors."""


class UnknownAgent(OrchestrationError, KeyError):
    """Referenced agent id is not part of the roster."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Unknown agent: {agent_id}")
        self.agent_id = agent_id

    def __str__(self) -> str:
        return f"Unknown agent: {self.agent_id}"


class UnknownTask(OrchestrationError, KeyError):
    """Referenced task id is not on the board."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Unknown task: {task_id}")
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Unknown task: {self.task_id}"


class InvalidTransition(OrchestrationError):
    """Requested state change has no valid predecessor state."""

    def __init__(self, entity_id: str, status_from: str, action: str) -> None:
        super().__init__(f"Cannot {action} {entity_id} from status {status_from!r}")
        self.entity_id = entity_id
        self.status_from = status_from
        self.action = action


class AgentBusy(InvalidTransition):
    """Agent already has an outstanding execution."""


class DependencyNotSatisfied(OrchestrationError):
    """Task has dependencies that are not completed yet."""

    def __init__(self, task_id: str, missing: Iterable[str]) -> None:
        self.task_id = task_id
        self.missing = tuple(sorted(missing))
        super().__init__(
            f"Task {task_id} is blocked by incomplete dependencies: {', '.join(self.missing)}",
        )


class TaskBusy(OrchestrationError):
    """Task is in progress and cannot be reassigned or double-dispatched."""

    def __init__(self, task_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Task {task_id} is already in progress")
        self.task_id = task_id


class VersionConflict(OrchestrationError):
    """Conditional write used a stale or missing version token."""

    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(message or f"Version conflict writing {path}")
        self.path = path


class FileStoreError(OrchestrationError):
    """Repository file store request failed for a reason other than a conflict."""

    def __init__(self, path: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class BackendDispatchFailed(OrchestrationError):
    """Execution backend rejected or could not accept a dispatch."""

    def __init__(
        self,
        message: str,
        *,
        transient: bool,
        failure_class: FailureClass | None = None,
        classification: BackendFailureClassification | None = None,
    ) -> None:
        super().__init__(message)
        self.transient = transient
        self.classification = classification
        if failure_class is None and classification is not None:
            failure_class = classification.failure_class
        self.failure_class = failure_class


class BackendPollFailed(OrchestrationError):
    """Status poll failed; the poll loop keeps going."""


class ExtractionAmbiguous(OrchestrationError):
    """No identifier could be inferred for an artifact without explicit path."""
