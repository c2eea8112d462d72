"""Domain models for agents, tasks, artifacts and remote executions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AgentType(str, Enum):
    """Role an agent plays in the project crew."""

    ARCHITECT = "architect"
    FRONTEND = "frontend"
    BACKEND = "backend"
    TESTING = "testing"
    DEVOPS = "devops"
    CUSTOM = "custom"


class AgentStatus(str, Enum):
    """Agent lifecycle states."""

    IDLE = "idle"
    WORKING = "working"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING = "waiting"


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {TaskStatus.COMPLETED, TaskStatus.FAILED}


class TaskPriority(str, Enum):
    """Task priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class RemoteStatus(str, Enum):
    """Execution backend view of one dispatched unit of work."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {RemoteStatus.COMPLETED, RemoteStatus.FAILED}


class FailureClass(str, Enum):
    """Normalized failure classes for backend errors."""

    TIMEOUT = "timeout"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_NON_RETRYABLE = "backend_non_retryable"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"


class MessageKind(str, Enum):
    """Feed message categories."""

    STATUS = "status"
    TEXT = "text"
    COLLABORATION = "collaboration"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class Agent:
    """Named logical worker bound to a role."""

    agent_id: str
    name: str
    agent_type: AgentType
    status: AgentStatus = AgentStatus.IDLE
    progress: int = 0
    active_task_id: str | None = None
    failure_reason: str | None = None


@dataclass(slots=True)
class Task:
    """Unit of work with lifecycle, assignment and dependencies."""

    task_id: str
    title: str
    description: str
    created_at: datetime
    updated_at: datetime
    status: TaskStatus = TaskStatus.PENDING
    assigned_agent_id: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    dependencies: frozenset[str] = frozenset()
    failure_reason: str | None = None


@dataclass(slots=True)
class CodeArtifact:
    """Language/path/content triple extracted from model output."""

    language: str
    path: str
    content: str
    path_inferred: bool = False


@dataclass(slots=True)
class DraftTask:
    """Task descriptor parsed from model output, not yet on the board."""

    title: str
    assigned_to: str
    description: str
    priority: TaskPriority
    agent_type: AgentType | None = None


@dataclass(slots=True)
class ExtractionResult:
    """Ordered artifacts and draft tasks found in one reply."""

    artifacts: list[CodeArtifact] = field(default_factory=list)
    drafts: list[DraftTask] = field(default_factory=list)
    strategy: str | None = None


@dataclass(slots=True)
class RemoteHandle:
    """Bridge-owned reference to one in-flight backend execution."""

    external_task_id: str
    agent_id: str
    task_id: str | None
    mode: str
    dispatched_at: datetime
    status: RemoteStatus = RemoteStatus.QUEUED
    result: str | None = None
    error: str | None = None
    abandoned: bool = False


@dataclass(slots=True)
class FeedMessage:
    """One entry of the message feed shown to the user."""

    message_id: int
    sender: str
    content: str
    kind: MessageKind
    created_at: datetime
    agent_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class OrchestrationSnapshot:
    """Read-only view handed to the presentation layer."""

    agents: tuple[Agent, ...]
    tasks: tuple[Task, ...]
    messages: tuple[FeedMessage, ...]
