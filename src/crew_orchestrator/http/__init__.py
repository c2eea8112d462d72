"""Shared HTTP plumbing for remote adapters."""

from crew_orchestrator.http.client import DEFAULT_USER_AGENT, build_async_client

__all__ = ["DEFAULT_USER_AGENT", "build_async_client"]
