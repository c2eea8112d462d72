"""Orchestration session: owns the HTTP clients, adapters and bridge of one project."""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from types import TracebackType
from typing import Any

import httpx

from crew_orchestrator.config import Settings
from crew_orchestrator.filestore.adapter import VersionedFileStore
from crew_orchestrator.filestore.github import GitHubContentsClient
from crew_orchestrator.http.client import build_async_client
from crew_orchestrator.orchestrator.agents import create_default_agents
from crew_orchestrator.orchestrator.backend.base import ExecutionBackend
from crew_orchestrator.orchestrator.backend.http_backend import HttpExecutionBackend
from crew_orchestrator.orchestrator.bridge import OrchestrationBridge
from crew_orchestrator.orchestrator.models import Agent

logger = logging.getLogger(__name__)


class OrchestrationSession:
    """Async context manager around one :class:`OrchestrationBridge`.

    Exiting cancels every poll loop and timer, then closes the HTTP clients
    the session created. With ``drain_on_exit`` a clean exit first waits for
    outstanding executions to finish.
    """

    def __init__(
        self,
        bridge: OrchestrationBridge,
        *,
        clients: Iterable[httpx.AsyncClient] = (),
        drain_on_exit: bool = False,
    ) -> None:
        self.bridge = bridge
        self.drain_on_exit = drain_on_exit
        self._clients = list(clients)
        self._closed = False

    @classmethod
    def from_settings(  # noqa: PLR0913
        cls,
        settings: Settings,
        *,
        agents: Iterable[Agent] | None = None,
        backend: ExecutionBackend | None = None,
        file_store: VersionedFileStore | None = None,
        project: dict[str, Any] | None = None,
        rng: random.Random | None = None,
        backend_transport: httpx.AsyncBaseTransport | None = None,
        file_store_transport: httpx.AsyncBaseTransport | None = None,
        drain_on_exit: bool = False,
    ) -> OrchestrationSession:
        """Wire a session from settings; injected adapters skip their validation."""

        settings.validate_for_bridge()
        clients: list[httpx.AsyncClient] = []

        if backend is None:
            settings.validate_for_backend()
            backend_client = build_async_client(
                base_url=settings.backend.base_url,
                token=settings.backend.api_token,
                timeout_seconds=settings.backend.request_timeout_seconds,
                max_retries=settings.backend.max_retries,
                transport=backend_transport,
            )
            clients.append(backend_client)
            backend = HttpExecutionBackend(backend_client)

        if file_store is None and settings.file_store.owner:
            settings.validate_for_file_store()
            github_client = build_async_client(
                base_url=settings.file_store.api_url,
                token=settings.file_store.token,
                timeout_seconds=settings.file_store.request_timeout_seconds,
                headers={"Accept": "application/vnd.github+json"},
                transport=file_store_transport,
            )
            clients.append(github_client)
            file_store = VersionedFileStore(
                GitHubContentsClient(
                    github_client,
                    owner=settings.file_store.owner,
                    repo=settings.file_store.repo,
                ),
                default_ref=settings.file_store.default_branch,
                verify_writes=settings.file_store.verify_writes,
            )
        elif file_store is None:
            logger.info("No repository configured; generated artifacts will not be persisted")

        bridge = OrchestrationBridge.create(
            agents=list(agents) if agents is not None else create_default_agents(),
            backend=backend,
            file_store=file_store,
            settings=settings.bridge,
            project=project,
            rng=rng,
            commit_message_template=settings.file_store.commit_message_template,
            dispatch_timeout_seconds=settings.backend.dispatch_timeout_seconds,
        )
        return cls(bridge, clients=clients, drain_on_exit=drain_on_exit)

    async def __aenter__(self) -> OrchestrationSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None and self.drain_on_exit:
            await self.bridge.drain()
        await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.bridge.aclose()
        finally:
            for client in self._clients:
                await client.aclose()
        logger.debug("Orchestration session closed")
