"""Execution backend implementations."""

from crew_orchestrator.orchestrator.backend.base import (
    AgentDescriptor,
    DispatchRequest,
    ExecutionBackend,
    PollResult,
)
from crew_orchestrator.orchestrator.backend.http_backend import HttpExecutionBackend
from crew_orchestrator.orchestrator.backend.scripted import ScriptedExecutionBackend, ScriptedRun

__all__ = [
    "AgentDescriptor",
    "DispatchRequest",
    "ExecutionBackend",
    "HttpExecutionBackend",
    "PollResult",
    "ScriptedExecutionBackend",
    "ScriptedRun",
]
