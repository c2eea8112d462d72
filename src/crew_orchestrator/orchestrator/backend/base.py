"""Backend interface for remote task execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from crew_orchestrator.orchestrator.models import Agent, AgentType, RemoteStatus, Task

MODE_TASK = "task"
MODE_PLAN = "plan"
MODE_CHAT = "chat"


@dataclass(slots=True)
class AgentDescriptor:
    """Agent identity sent along with a dispatch."""

    agent_id: str
    name: str
    agent_type: AgentType

    @classmethod
    def from_agent(cls, agent: Agent) -> AgentDescriptor:
        return cls(agent_id=agent.agent_id, name=agent.name, agent_type=agent.agent_type)


@dataclass(slots=True)
class DispatchRequest:
    """Inputs required to start one remote execution."""

    agent: AgentDescriptor
    mode: str = MODE_TASK
    task_id: str | None = None
    task_title: str | None = None
    task_description: str | None = None
    task_priority: str | None = None
    message: str | None = None
    project: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_task(
        cls,
        agent: Agent,
        task: Task,
        *,
        project: dict[str, Any] | None = None,
    ) -> DispatchRequest:
        return cls(
            agent=AgentDescriptor.from_agent(agent),
            mode=MODE_TASK,
            task_id=task.task_id,
            task_title=task.title,
            task_description=task.description,
            task_priority=task.priority.value,
            project=dict(project or {}),
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON body for the execution service."""

        payload: dict[str, Any] = {
            "agent_id": self.agent.agent_id,
            "agent_name": self.agent.name,
            "agent_type": self.agent.agent_type.value,
            "mode": self.mode,
        }
        if self.project:
            payload["project_data"] = dict(self.project)
        if self.task_id is not None:
            payload["task_data"] = {
                "id": self.task_id,
                "title": self.task_title,
                "description": self.task_description,
                "priority": self.task_priority,
            }
        if self.message is not None:
            payload["message"] = self.message
        return payload


@dataclass(slots=True)
class PollResult:
    """Remote status observed by one poll."""

    status: RemoteStatus
    result: str | None = None
    error: str | None = None


class ExecutionBackend(Protocol):
    """Protocol implemented by execution backends."""

    async def dispatch(self, request: DispatchRequest) -> str:
        """Start remote work and return its external task id."""
        raise NotImplementedError

    async def poll_status(self, external_task_id: str) -> PollResult:
        """Fetch the current status of a dispatched execution."""
        raise NotImplementedError
