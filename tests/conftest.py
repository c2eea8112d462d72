"""Shared test fixtures."""

from __future__ import annotations

import random

import pytest

from crew_orchestrator.config import BridgeSettings
from crew_orchestrator.filestore import InMemoryContentsClient, VersionedFileStore
from crew_orchestrator.orchestrator.backend import ScriptedExecutionBackend
from crew_orchestrator.orchestrator.bridge import OrchestrationBridge
from crew_orchestrator.orchestrator.models import Agent, AgentType

ARCHITECT_ID = "agent-architect"
FRONTEND_ID = "agent-frontend"
TESTING_ID = "agent-testing"


@pytest.fixture()
def fast_settings() -> BridgeSettings:
    """Bridge tunables with zero delays and no collaboration chatter."""
    return BridgeSettings(
        poll_interval_seconds=0.0,
        poll_request_timeout_seconds=5.0,
        max_poll_seconds=30.0,
        continuation_delay_seconds=0.0,
        collaboration_probability=0.0,
    )


@pytest.fixture()
def crew() -> list[Agent]:
    return [
        Agent(agent_id=ARCHITECT_ID, name="Architect Agent", agent_type=AgentType.ARCHITECT),
        Agent(agent_id=FRONTEND_ID, name="Frontend Agent", agent_type=AgentType.FRONTEND),
        Agent(agent_id=TESTING_ID, name="Testing Agent", agent_type=AgentType.TESTING),
    ]


@pytest.fixture()
def backend() -> ScriptedExecutionBackend:
    return ScriptedExecutionBackend()


@pytest.fixture()
def contents() -> InMemoryContentsClient:
    return InMemoryContentsClient()


@pytest.fixture()
def bridge(crew, backend, contents, fast_settings) -> OrchestrationBridge:
    return OrchestrationBridge.create(
        agents=crew,
        backend=backend,
        file_store=VersionedFileStore(contents, default_ref="main"),
        settings=fast_settings,
        rng=random.Random(7),
    )
