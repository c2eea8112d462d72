"""Orchestration bridge: dispatch, poll, extract, persist and continue."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from crew_orchestrator.common import utc_now
from crew_orchestrator.config import BridgeSettings
from crew_orchestrator.filestore.adapter import VersionedFileStore
from crew_orchestrator.orchestrator.agents import (
    AgentEvent,
    AgentEventSink,
    AgentRoster,
    AgentStateMachine,
)
from crew_orchestrator.orchestrator.backend.base import (
    MODE_CHAT,
    MODE_PLAN,
    MODE_TASK,
    AgentDescriptor,
    DispatchRequest,
    ExecutionBackend,
    PollResult,
)
from crew_orchestrator.orchestrator.collaboration import CollaborationSimulator
from crew_orchestrator.orchestrator.errors import (
    AgentBusy,
    BackendDispatchFailed,
    BackendPollFailed,
    DependencyNotSatisfied,
    FileStoreError,
    OrchestrationError,
    VersionConflict,
)
from crew_orchestrator.orchestrator.extractor import extract
from crew_orchestrator.orchestrator.feed import SYSTEM_SENDER, USER_SENDER, MessageFeed
from crew_orchestrator.orchestrator.models import (
    Agent,
    AgentStatus,
    CodeArtifact,
    DraftTask,
    FailureClass,
    MessageKind,
    OrchestrationSnapshot,
    RemoteHandle,
    RemoteStatus,
    Task,
)
from crew_orchestrator.orchestrator.presenter import normalize_title, present_tasks
from crew_orchestrator.orchestrator.sanitization import sanitize_preview
from crew_orchestrator.orchestrator.tasks import TaskBoard

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ArtifactWriteSummary:
    """Counters for one batch of artifact writes."""

    written: int = 0
    unchanged: int = 0
    failed: int = 0


class OrchestrationBridge:
    """Coordinates agents, tasks, the execution backend and the file store.

    Each agent has at most one active poll loop, held as an ``asyncio.Task``.
    All state mutation happens on the event loop thread, so the only
    suspension points are backend calls, file store calls and sleeps.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        roster: AgentRoster,
        board: TaskBoard,
        feed: MessageFeed,
        backend: ExecutionBackend,
        file_store: VersionedFileStore | None,
        settings: BridgeSettings | None = None,
        project: dict[str, Any] | None = None,
        rng: random.Random | None = None,
        collaboration: CollaborationSimulator | None = None,
        commit_message_template: str = "Add {path} from {agent}",
        dispatch_timeout_seconds: float = 60.0,
    ) -> None:
        self.roster = roster
        self.board = board
        self.feed = feed
        self.backend = backend
        self.file_store = file_store
        self.settings = settings or BridgeSettings()
        self.project = dict(project or {})
        self.commit_message_template = commit_message_template
        self.dispatch_timeout_seconds = dispatch_timeout_seconds
        self.collaboration = collaboration or CollaborationSimulator(
            feed=feed,
            probability=self.settings.collaboration_probability,
            rng=rng,
        )
        self._handles: dict[str, RemoteHandle] = {}
        self._pollers: dict[str, asyncio.Task[None]] = {}
        self._continuations: dict[str, asyncio.Task[None]] = {}
        self._chats: dict[str, asyncio.Task[None]] = {}
        self._dispatch_epochs: dict[str, int] = {}

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        *,
        agents: Iterable[Agent],
        backend: ExecutionBackend,
        file_store: VersionedFileStore | None,
        settings: BridgeSettings | None = None,
        project: dict[str, Any] | None = None,
        rng: random.Random | None = None,
        commit_message_template: str = "Add {path} from {agent}",
        dispatch_timeout_seconds: float = 60.0,
    ) -> OrchestrationBridge:
        """Bridge over a fresh board and feed, with agent events mirrored into the feed."""

        settings = settings or BridgeSettings()
        feed = MessageFeed(max_messages=settings.feed_max_messages)
        return cls(
            roster=AgentRoster(agents, emit=agent_event_sink(feed)),
            board=TaskBoard(),
            feed=feed,
            backend=backend,
            file_store=file_store,
            settings=settings,
            project=project,
            rng=rng,
            commit_message_template=commit_message_template,
            dispatch_timeout_seconds=dispatch_timeout_seconds,
        )

    def snapshot(self, *, dedupe: bool = True) -> OrchestrationSnapshot:
        """Read-only view of agents, tasks and messages for the UI."""

        tasks = self.board.tasks()
        return OrchestrationSnapshot(
            agents=self.roster.agents(),
            tasks=tuple(present_tasks(tasks)) if dedupe else tasks,
            messages=self.feed.messages(),
        )

    def is_polling(self, agent_id: str) -> bool:
        poller = self._pollers.get(agent_id)
        return poller is not None and not poller.done()

    def active_handle(self, agent_id: str) -> RemoteHandle | None:
        return self._handles.get(agent_id)

    async def execute(self, task_id: str, agent_id: str) -> RemoteHandle:
        """Assign ``task_id`` to ``agent_id`` and start it right away.

        The assignment is only made once the task's dependencies are complete
        and the agent is free to start. It is reverted if the start fails.
        """

        machine = self.roster.get(agent_id)
        if self.is_polling(agent_id) or agent_id in self._chats:
            raise AgentBusy(agent_id, machine.status.value, "execute")
        if machine.status == AgentStatus.WORKING:
            raise AgentBusy(agent_id, machine.status.value, "execute")
        unmet = self.board.unmet_dependencies(task_id)
        if unmet:
            raise DependencyNotSatisfied(task_id, unmet)
        previous_agent_id = self.board.get(task_id).assigned_agent_id
        self.board.assign(task_id, agent_id)
        try:
            return await self.start_agent(agent_id, task_id)
        except OrchestrationError:
            if previous_agent_id != agent_id:
                self.board.restore_assignment(task_id, previous_agent_id)
            raise

    async def start_agent(self, agent_id: str, task_id: str | None = None) -> RemoteHandle:
        """Put the agent to work and dispatch its task (or a planning run).

        Preconditions are checked before anything is mutated. A dispatch
        failure leaves the agent ``idle`` and the task ``pending``.
        """

        machine = self.roster.get(agent_id)
        if self.is_polling(agent_id) or agent_id in self._chats:
            raise AgentBusy(agent_id, machine.status.value, "start")

        task: Task | None
        if task_id is None:
            task = self.board.next_task_for(agent_id)
        else:
            task = self.board.get(task_id)
        if task is not None:
            self.board.check_can_begin(task.task_id, agent_id)

        if machine.status in {AgentStatus.COMPLETED, AgentStatus.FAILED}:
            machine.restart()
        elif machine.status == AgentStatus.WAITING:
            machine.resume()
        else:
            machine.start()
        self._cancel_continuation(agent_id)

        agent = machine.view()
        if task is not None:
            self.board.begin(task.task_id, agent_id)
            machine.bind_task(task.task_id)
            request = DispatchRequest.for_task(agent, task, project=self.project)
        else:
            request = DispatchRequest(
                agent=AgentDescriptor.from_agent(agent),
                mode=MODE_PLAN,
                project=dict(self.project),
            )

        epoch = self._dispatch_epochs.get(agent_id, 0)
        try:
            external_task_id = await self._dispatch(request)
        except BackendDispatchFailed as error:
            if self._dispatch_epochs.get(agent_id, 0) == epoch:
                self._rollback_dispatch(machine, error)
            raise

        handle = RemoteHandle(
            external_task_id=external_task_id,
            agent_id=agent_id,
            task_id=task.task_id if task is not None else None,
            mode=request.mode,
            dispatched_at=utc_now(),
        )
        if (
            self._dispatch_epochs.get(agent_id, 0) != epoch
            or machine.status != AgentStatus.WORKING
        ):
            handle.abandoned = True
            logger.info(
                "Agent %s was stopped during dispatch; abandoning %s",
                agent.name,
                external_task_id,
            )
            return handle
        self._handles[agent_id] = handle
        self._pollers[agent_id] = asyncio.create_task(
            self._run_poll(handle),
            name=f"poll-{agent_id}",
        )
        logger.info(
            "Agent %s dispatched %s as %s",
            agent.name,
            task.task_id if task is not None else "planning run",
            external_task_id,
        )
        return handle

    def stop_agent(self, agent_id: str) -> None:
        """Abandon the agent's remote execution and return it to ``idle``.

        The poll task is cancelled without being awaited; a late terminal
        status for the abandoned handle is ignored. A dispatch still in flight
        is abandoned when it returns.
        """

        machine = self.roster.get(agent_id)
        self._dispatch_epochs[agent_id] = self._dispatch_epochs.get(agent_id, 0) + 1
        handle = self._handles.pop(agent_id, None)
        if handle is not None:
            handle.abandoned = True
        poller = self._pollers.pop(agent_id, None)
        if poller is not None:
            poller.cancel()
        self._cancel_continuation(agent_id)

        running = self.board.in_progress_for(agent_id)
        if running is not None:
            self.board.release(running.task_id)
        machine.stop()

    def wait_agent(self, agent_id: str, reason: str) -> None:
        """Park a working agent that has nothing dispatched."""

        machine = self.roster.get(agent_id)
        if self.is_polling(agent_id):
            raise AgentBusy(agent_id, machine.status.value, "wait")
        machine.wait(reason)

    def resume_agent(self, agent_id: str) -> None:
        self.roster.get(agent_id).resume()

    async def send_message(self, agent_id: str, text: str) -> None:
        """Chat with an agent on a side channel that never touches its state."""

        machine = self.roster.get(agent_id)
        if not text.strip():
            raise ValueError("Message must not be empty.")
        if self.is_polling(agent_id) or agent_id in self._chats:
            raise AgentBusy(agent_id, machine.status.value, "chat with")

        agent = machine.view()
        self.feed.post(sender=USER_SENDER, content=text, agent_id=agent_id)
        request = DispatchRequest(
            agent=AgentDescriptor.from_agent(agent),
            mode=MODE_CHAT,
            message=text,
            project=dict(self.project),
        )
        try:
            external_task_id = await self._dispatch(request)
        except BackendDispatchFailed as error:
            self._post_error(agent, f"{agent.name} could not receive the message", error)
            raise
        handle = RemoteHandle(
            external_task_id=external_task_id,
            agent_id=agent_id,
            task_id=None,
            mode=MODE_CHAT,
            dispatched_at=utc_now(),
        )
        self._chats[agent_id] = asyncio.create_task(
            self._run_chat(agent, handle),
            name=f"chat-{agent_id}",
        )

    async def drain(self) -> None:
        """Wait until no poll loop, chat or continuation timer is pending."""

        while True:
            pending = [
                task
                for task in (
                    *self._pollers.values(),
                    *self._chats.values(),
                    *self._continuations.values(),
                )
                if not task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel every background task and wait for them to unwind."""

        for handle in self._handles.values():
            handle.abandoned = True
        tasks = [*self._pollers.values(), *self._chats.values(), *self._continuations.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._handles.clear()
        self._pollers.clear()
        self._chats.clear()
        self._continuations.clear()

    async def _dispatch(self, request: DispatchRequest) -> str:
        try:
            return await asyncio.wait_for(
                self.backend.dispatch(request),
                timeout=self.dispatch_timeout_seconds,
            )
        except TimeoutError as error:
            raise BackendDispatchFailed(
                f"Dispatch for {request.agent.name} timed out after "
                f"{self.dispatch_timeout_seconds:.0f}s",
                transient=True,
                failure_class=FailureClass.TIMEOUT,
            ) from error

    def _rollback_dispatch(
        self,
        machine: AgentStateMachine,
        error: BackendDispatchFailed,
    ) -> None:
        running = self.board.in_progress_for(machine.agent_id)
        if running is not None:
            self.board.release(running.task_id)
        machine.stop()
        logger.warning(
            "Dispatch failed for agent %s (transient=%s): %s",
            machine.agent_id,
            error.transient,
            error,
        )
        self._post_error(machine.view(), "Dispatch failed", error)

    async def _run_poll(self, handle: RemoteHandle) -> None:
        try:
            outcome = await self._poll_until_terminal(handle)
        except asyncio.CancelledError:
            logger.debug("Poll loop for %s cancelled", handle.external_task_id)
            raise
        if not self._owns(handle):
            logger.info(
                "Ignoring late %s status for abandoned %s",
                outcome.status.value,
                handle.external_task_id,
            )
            return
        handle.status = outcome.status
        if outcome.status != RemoteStatus.COMPLETED:
            handle.error = outcome.error or "Execution failed without error details"
            self._on_failed(handle)
            return
        handle.result = outcome.result or ""
        try:
            await self._on_completed(handle)
        except OrchestrationError as error:
            logger.warning("Processing result of %s failed: %s", handle.external_task_id, error)
            self._fail_processing(handle, error)
        except Exception as error:
            logger.exception("Unexpected error processing result of %s", handle.external_task_id)
            self._fail_processing(handle, error)

    def _fail_processing(self, handle: RemoteHandle, error: Exception) -> None:
        if self._owns(handle):
            handle.error = f"Result processing failed: {error}"
            self._on_failed(handle)

    async def _poll_until_terminal(self, handle: RemoteHandle) -> PollResult:
        started = time.monotonic()
        while True:
            await asyncio.sleep(self.settings.poll_interval_seconds)
            if handle.abandoned:
                return PollResult(status=RemoteStatus.FAILED, error="abandoned")
            try:
                result = await asyncio.wait_for(
                    self.backend.poll_status(handle.external_task_id),
                    timeout=self.settings.poll_request_timeout_seconds,
                )
            except BackendPollFailed as error:
                logger.warning("Poll for %s failed, continuing: %s", handle.external_task_id, error)
                result = None
            except TimeoutError:
                logger.warning("Poll for %s timed out, continuing", handle.external_task_id)
                result = None

            if result is not None:
                handle.status = result.status
                if result.status.is_terminal:
                    return result
            if time.monotonic() - started >= self.settings.max_poll_seconds:
                return PollResult(
                    status=RemoteStatus.FAILED,
                    error=f"Execution timed out after {self.settings.max_poll_seconds:.0f}s",
                )

    def _owns(self, handle: RemoteHandle) -> bool:
        if handle.abandoned or self._handles.get(handle.agent_id) is not handle:
            return False
        return self.roster.get(handle.agent_id).status == AgentStatus.WORKING

    async def _on_completed(self, handle: RemoteHandle) -> None:
        machine = self.roster.get(handle.agent_id)
        agent = machine.view()
        extraction = extract(handle.result or "")
        machine.set_progress(50)

        writes = await self._persist_artifacts(agent, extraction.artifacts)
        if not self._owns(handle):
            logger.info("Agent %s was stopped while persisting artifacts", agent.name)
            return
        created = self._create_drafts(agent, extraction.drafts)

        if handle.task_id is not None:
            self.board.complete(handle.task_id)
        machine.complete()
        self._teardown(handle)
        self.feed.post(
            sender=agent.name,
            content=_summary_text(agent, handle, writes, created),
            agent_id=agent.agent_id,
            details={
                "external_task_id": handle.external_task_id,
                "task_id": handle.task_id,
                "artifacts_written": writes.written,
                "artifacts_unchanged": writes.unchanged,
                "artifacts_failed": writes.failed,
                "tasks_created": len(created),
                "extraction_strategy": extraction.strategy,
            },
        )
        self._schedule_continuation(handle.agent_id)
        self._maybe_collaborate()

    def _on_failed(self, handle: RemoteHandle) -> None:
        machine = self.roster.get(handle.agent_id)
        reason = sanitize_preview(handle.error or "")
        if handle.task_id is not None:
            self.board.fail(handle.task_id, reason)
        machine.fail(reason)
        self._teardown(handle)
        agent = machine.view()
        self.feed.post(
            sender=SYSTEM_SENDER,
            content=f"{agent.name} failed its task: {reason}",
            kind=MessageKind.ERROR,
            agent_id=agent.agent_id,
            details={"external_task_id": handle.external_task_id, "task_id": handle.task_id},
        )

    def _teardown(self, handle: RemoteHandle) -> None:
        if self._handles.get(handle.agent_id) is handle:
            del self._handles[handle.agent_id]
        self._pollers.pop(handle.agent_id, None)

    async def _persist_artifacts(
        self,
        agent: Agent,
        artifacts: list[CodeArtifact],
    ) -> ArtifactWriteSummary:
        summary = ArtifactWriteSummary()
        if self.file_store is None or not artifacts:
            return summary
        for artifact in artifacts:
            message = self.commit_message_template.format(path=artifact.path, agent=agent.name)
            attempts = self.settings.artifact_write_retries + 1
            for attempt in range(1, attempts + 1):
                try:
                    result = await self.file_store.write(artifact.path, artifact.content, message)
                except VersionConflict as error:
                    if attempt < attempts:
                        logger.info("Retrying write of %s after conflict", artifact.path)
                        continue
                    self._artifact_warning(agent, artifact, error)
                    summary.failed += 1
                except FileStoreError as error:
                    self._artifact_warning(agent, artifact, error)
                    summary.failed += 1
                else:
                    if result.changed is False:
                        summary.unchanged += 1
                    else:
                        summary.written += 1
                    if result.warning:
                        self.feed.post(
                            sender=SYSTEM_SENDER,
                            content=result.warning,
                            kind=MessageKind.WARNING,
                            agent_id=agent.agent_id,
                            details={"path": artifact.path},
                        )
                break
        return summary

    def _artifact_warning(self, agent: Agent, artifact: CodeArtifact, error: Exception) -> None:
        logger.warning("Could not persist %s for %s: %s", artifact.path, agent.name, error)
        self.feed.post(
            sender=SYSTEM_SENDER,
            content=sanitize_preview(f"Could not save {artifact.path}: {error}"),
            kind=MessageKind.WARNING,
            agent_id=agent.agent_id,
            details={"path": artifact.path, "error_type": type(error).__name__},
        )

    def _create_drafts(self, producer: Agent, drafts: list[DraftTask]) -> list[Task]:
        known_titles = {normalize_title(task.title) for task in self.board.tasks()}
        created: list[Task] = []
        for draft in drafts:
            key = normalize_title(draft.title)
            if not key or key in known_titles:
                continue
            known_titles.add(key)
            assignee = self.roster.first_of_type(draft.agent_type) if draft.agent_type else None
            created.append(
                self.board.create(
                    title=f"[{producer.name}] {draft.title}",
                    description=draft.description,
                    priority=draft.priority,
                    assigned_agent_id=(assignee or producer).agent_id,
                ),
            )
        return created

    def _schedule_continuation(self, agent_id: str) -> None:
        self._cancel_continuation(agent_id)
        self._continuations[agent_id] = asyncio.create_task(
            self._continue_later(agent_id),
            name=f"continue-{agent_id}",
        )

    def _cancel_continuation(self, agent_id: str) -> None:
        timer = self._continuations.pop(agent_id, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _continue_later(self, agent_id: str) -> None:
        await asyncio.sleep(self.settings.continuation_delay_seconds)
        if self._continuations.get(agent_id) is asyncio.current_task():
            del self._continuations[agent_id]
        machine = self.roster.get(agent_id)
        if machine.status != AgentStatus.COMPLETED or self.is_polling(agent_id):
            return
        task = self.board.next_task_for(agent_id)
        if task is None:
            return
        try:
            await self.start_agent(agent_id, task.task_id)
        except OrchestrationError as error:
            logger.warning("Continuation for agent %s did not start: %s", agent_id, error)
        except Exception:
            logger.exception("Continuation for agent %s failed", agent_id)

    def _maybe_collaborate(self) -> None:
        try:
            self.collaboration.maybe_exchange(self.roster.with_status(AgentStatus.WORKING))
        except Exception:
            logger.exception("Collaboration side channel failed")

    async def _run_chat(self, agent: Agent, handle: RemoteHandle) -> None:
        try:
            outcome = await self._poll_until_terminal(handle)
            if outcome.status == RemoteStatus.COMPLETED:
                self.feed.post(
                    sender=agent.name,
                    content=outcome.result or "",
                    agent_id=agent.agent_id,
                    details={"external_task_id": handle.external_task_id, "mode": MODE_CHAT},
                )
            else:
                self.feed.post(
                    sender=SYSTEM_SENDER,
                    content=sanitize_preview(
                        f"{agent.name} could not reply: {outcome.error or 'unknown error'}",
                    ),
                    kind=MessageKind.ERROR,
                    agent_id=agent.agent_id,
                )
        finally:
            if self._chats.get(agent.agent_id) is asyncio.current_task():
                del self._chats[agent.agent_id]

    def _post_error(self, agent: Agent, prefix: str, error: BackendDispatchFailed) -> None:
        details: dict[str, object] = {
            "transient": error.transient,
            "failure_class": error.failure_class.value if error.failure_class else None,
        }
        if error.classification is not None:
            details.update(error.classification.to_event_details())
        self.feed.post(
            sender=SYSTEM_SENDER,
            content=sanitize_preview(f"{prefix}: {error}"),
            kind=MessageKind.ERROR,
            agent_id=agent.agent_id,
            details=details,
        )


def agent_event_sink(feed: MessageFeed) -> AgentEventSink:
    """Roster ``emit`` callback that mirrors agent transitions into ``feed``."""

    def _post(event: AgentEvent) -> None:
        feed.post(
            sender=SYSTEM_SENDER,
            content=event.text,
            kind=MessageKind.WARNING if event.rejected else MessageKind.STATUS,
            agent_id=event.agent_id,
            details={
                "action": event.action,
                "status_from": event.status_from.value,
                "status_to": event.status_to.value,
                "progress": event.progress,
            },
        )

    return _post


def _summary_text(
    agent: Agent,
    handle: RemoteHandle,
    writes: ArtifactWriteSummary,
    created: list[Task],
) -> str:
    subject = "its task" if handle.mode == MODE_TASK else "planning"
    parts = [f"{agent.name} finished {subject}."]
    if writes.written or writes.unchanged:
        parts.append(f"Saved {writes.written + writes.unchanged} file(s).")
    if writes.failed:
        parts.append(f"{writes.failed} file(s) could not be saved.")
    if created:
        parts.append(f"Created {len(created)} new task(s).")
    return " ".join(parts)
