"""Deterministic in-memory execution backend for local runs and tests."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field

from crew_orchestrator.orchestrator.backend.base import DispatchRequest, PollResult
from crew_orchestrator.orchestrator.errors import BackendDispatchFailed, BackendPollFailed
from crew_orchestrator.orchestrator.models import RemoteStatus


@dataclass(slots=True)
class ScriptedRun:
    """Planned outcome of one dispatch."""

    reply: str | None = None
    error: str | None = None
    running_polls: int = 0
    poll_failures: int = 0
    gate: asyncio.Event | None = None


@dataclass(slots=True)
class _RunState:
    request: DispatchRequest
    run: ScriptedRun
    polls: int = 0
    failures_left: int = 0


@dataclass(slots=True)
class ScriptedExecutionBackend:
    """Plays back queued :class:`ScriptedRun` outcomes in dispatch order.

    Without a queued run the reply echoes the task title (or chat message).
    A run with ``gate`` holds its terminal status until the event is set;
    ``dispatch_gate`` holds every dispatch the same way.
    """

    runs: deque[ScriptedRun] = field(default_factory=deque)
    dispatch_errors: deque[BackendDispatchFailed] = field(default_factory=deque)
    dispatched: list[DispatchRequest] = field(default_factory=list)
    poll_count: int = 0
    dispatch_gate: asyncio.Event | None = None
    _states: dict[str, _RunState] = field(default_factory=dict)

    def script(self, run: ScriptedRun) -> None:
        self.runs.append(run)

    def fail_next_dispatch(self, error: BackendDispatchFailed) -> None:
        self.dispatch_errors.append(error)

    async def dispatch(self, request: DispatchRequest) -> str:
        await asyncio.sleep(0)
        if self.dispatch_gate is not None:
            await self.dispatch_gate.wait()
        if self.dispatch_errors:
            raise self.dispatch_errors.popleft()
        run = self.runs.popleft() if self.runs else ScriptedRun(reply=_echo_reply(request))
        external_task_id = f"scripted-{len(self.dispatched) + 1}"
        self.dispatched.append(request)
        self._states[external_task_id] = _RunState(
            request=request,
            run=run,
            failures_left=run.poll_failures,
        )
        return external_task_id

    async def poll_status(self, external_task_id: str) -> PollResult:
        self.poll_count += 1
        state = self._states.get(external_task_id)
        if state is None:
            raise BackendPollFailed(f"Unknown scripted task {external_task_id}")
        if state.failures_left > 0:
            state.failures_left -= 1
            raise BackendPollFailed(f"Scripted transient poll failure for {external_task_id}")
        state.polls += 1
        if state.polls <= state.run.running_polls:
            return PollResult(status=RemoteStatus.RUNNING)
        if state.run.gate is not None:
            await state.run.gate.wait()
        if state.run.error is not None:
            return PollResult(status=RemoteStatus.FAILED, error=state.run.error)
        return PollResult(status=RemoteStatus.COMPLETED, result=state.run.reply or "")


def _echo_reply(request: DispatchRequest) -> str:
    if request.message:
        return request.message
    if request.task_title:
        return f"Completed: {request.task_title}"
    return f"{request.agent.name} has nothing to report."
