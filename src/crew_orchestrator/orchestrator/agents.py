"""Agent lifecycle state machine and per-project roster."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from uuid import uuid4

from crew_orchestrator.orchestrator.errors import AgentBusy, InvalidTransition, UnknownAgent
from crew_orchestrator.orchestrator.models import Agent, AgentStatus, AgentType

START_PROGRESS = 10
DONE_PROGRESS = 100

DEFAULT_CREW: tuple[tuple[str, AgentType], ...] = (
    ("Architect Agent", AgentType.ARCHITECT),
    ("Frontend Agent", AgentType.FRONTEND),
    ("Backend Agent", AgentType.BACKEND),
    ("Testing Agent", AgentType.TESTING),
    ("DevOps Agent", AgentType.DEVOPS),
)


@dataclass(slots=True)
class AgentEvent:
    """One agent transition, described in natural language."""

    agent_id: str
    agent_name: str
    action: str
    status_from: AgentStatus
    status_to: AgentStatus
    progress: int
    text: str
    rejected: bool = False


AgentEventSink = Callable[[AgentEvent], None]


def _discard(_: AgentEvent) -> None:
    return None


class AgentStateMachine:
    """Owns one agent's status, progress and active task binding."""

    def __init__(self, agent: Agent, *, emit: AgentEventSink | None = None) -> None:
        self._agent = agent
        self._emit = emit or _discard

    @property
    def agent_id(self) -> str:
        return self._agent.agent_id

    @property
    def status(self) -> AgentStatus:
        return self._agent.status

    @property
    def active_task_id(self) -> str | None:
        return self._agent.active_task_id

    def view(self) -> Agent:
        """Detached copy of the agent record."""

        return replace(self._agent)

    def start(self) -> None:
        """idle -> working with initial progress."""

        if self._agent.status == AgentStatus.WORKING:
            self._reject("start", busy=True)
        self._require("start", AgentStatus.IDLE)
        self._transition(
            "start",
            AgentStatus.WORKING,
            progress=START_PROGRESS,
            text=f"{self._agent.name} is now working.",
        )

    def stop(self) -> None:
        """Any state -> idle; used for cancellation and session reset."""

        self._agent.active_task_id = None
        self._agent.failure_reason = None
        self._transition(
            "stop",
            AgentStatus.IDLE,
            progress=0,
            text=f"{self._agent.name} stopped and is now idle.",
        )

    def complete(self) -> None:
        """working -> completed at full progress."""

        self._require("complete", AgentStatus.WORKING)
        self._agent.active_task_id = None
        self._transition(
            "complete",
            AgentStatus.COMPLETED,
            progress=DONE_PROGRESS,
            text=f"{self._agent.name} completed its work.",
        )

    def fail(self, reason: str) -> None:
        """working -> failed; progress is kept for diagnostics."""

        self._require("fail", AgentStatus.WORKING)
        self._agent.active_task_id = None
        self._agent.failure_reason = reason
        self._transition(
            "fail",
            AgentStatus.FAILED,
            progress=self._agent.progress,
            text=f"{self._agent.name} failed: {reason}",
        )

    def restart(self) -> None:
        """completed|failed -> working, progress reset."""

        self._require("restart", AgentStatus.COMPLETED, AgentStatus.FAILED)
        self._agent.failure_reason = None
        self._transition(
            "restart",
            AgentStatus.WORKING,
            progress=START_PROGRESS,
            text=f"{self._agent.name} restarted and is working again.",
        )

    def wait(self, reason: str) -> None:
        """working -> waiting while blocked on a dependency."""

        self._require("wait", AgentStatus.WORKING)
        self._transition(
            "wait",
            AgentStatus.WAITING,
            progress=self._agent.progress,
            text=f"{self._agent.name} is waiting: {reason}",
        )

    def resume(self) -> None:
        """waiting -> working."""

        self._require("resume", AgentStatus.WAITING)
        self._transition(
            "resume",
            AgentStatus.WORKING,
            progress=self._agent.progress,
            text=f"{self._agent.name} resumed work.",
        )

    def bind_task(self, task_id: str) -> None:
        """Record the task this working agent is executing."""

        self._require("bind task to", AgentStatus.WORKING)
        current = self._agent.active_task_id
        if current is not None and current != task_id:
            self._reject("bind task to", busy=True)
        self._agent.active_task_id = task_id

    def set_progress(self, progress: int) -> None:
        self._require("update progress of", AgentStatus.WORKING)
        self._agent.progress = max(0, min(DONE_PROGRESS, progress))

    def _require(self, action: str, *allowed: AgentStatus) -> None:
        if self._agent.status not in allowed:
            self._reject(action)

    def _reject(self, action: str, *, busy: bool = False) -> None:
        status = self._agent.status
        self._emit(
            AgentEvent(
                agent_id=self._agent.agent_id,
                agent_name=self._agent.name,
                action=action,
                status_from=status,
                status_to=status,
                progress=self._agent.progress,
                text=f"{self._agent.name} cannot {action} while {status.value}.",
                rejected=True,
            ),
        )
        error_type = AgentBusy if busy else InvalidTransition
        raise error_type(self._agent.agent_id, status.value, action)

    def _transition(self, action: str, status_to: AgentStatus, *, progress: int, text: str) -> None:
        status_from = self._agent.status
        self._agent.status = status_to
        self._agent.progress = progress
        self._emit(
            AgentEvent(
                agent_id=self._agent.agent_id,
                agent_name=self._agent.name,
                action=action,
                status_from=status_from,
                status_to=status_to,
                progress=progress,
                text=text,
            ),
        )


class AgentRoster:
    """All agent state machines of one project session."""

    def __init__(self, agents: Iterable[Agent], *, emit: AgentEventSink | None = None) -> None:
        self._machines: dict[str, AgentStateMachine] = {}
        for agent in agents:
            if agent.agent_id in self._machines:
                raise ValueError(f"Duplicate agent id: {agent.agent_id}")
            self._machines[agent.agent_id] = AgentStateMachine(agent, emit=emit)

    def get(self, agent_id: str) -> AgentStateMachine:
        machine = self._machines.get(agent_id)
        if machine is None:
            raise UnknownAgent(agent_id)
        return machine

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._machines

    def agents(self) -> tuple[Agent, ...]:
        return tuple(machine.view() for machine in self._machines.values())

    def first_of_type(self, agent_type: AgentType) -> Agent | None:
        for machine in self._machines.values():
            agent = machine.view()
            if agent.agent_type == agent_type:
                return agent
        return None

    def with_status(self, status: AgentStatus) -> list[Agent]:
        return [
            machine.view() for machine in self._machines.values() if machine.status == status
        ]


def create_default_agents() -> list[Agent]:
    """Fresh idle crew created once per project at initialization."""

    return [
        Agent(agent_id=str(uuid4()), name=name, agent_type=agent_type)
        for name, agent_type in DEFAULT_CREW
    ]
