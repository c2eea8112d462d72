from __future__ import annotations

import json

import allure
import httpx
import pytest

from crew_orchestrator.http import build_async_client
from crew_orchestrator.orchestrator.backend import DispatchRequest, HttpExecutionBackend
from crew_orchestrator.orchestrator.backend.http_backend import normalize_result
from crew_orchestrator.orchestrator.errors import BackendDispatchFailed, BackendPollFailed
from crew_orchestrator.orchestrator.models import (
    Agent,
    AgentType,
    FailureClass,
    RemoteStatus,
    TaskPriority,
)
from crew_orchestrator.orchestrator.tasks import TaskBoard

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Execution Backend"),
]

_AGENT = Agent(agent_id="a1", name="Backend Agent", agent_type=AgentType.BACKEND)


def _backend(handler) -> tuple[HttpExecutionBackend, httpx.AsyncClient]:
    client = build_async_client(
        base_url="http://backend.test",
        token="secret-token",
        transport=httpx.MockTransport(handler),
    )
    return HttpExecutionBackend(client), client


def _request() -> DispatchRequest:
    board = TaskBoard()
    task = board.create(title="Build API", description="REST endpoints", priority=TaskPriority.HIGH)
    return DispatchRequest.for_task(_AGENT, task, project={"name": "Demo"})


@pytest.mark.asyncio
async def test_dispatch_posts_kickoff_payload_and_returns_task_id() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"task_id": "ext-42"})

    backend, client = _backend(handler)
    request = _request()

    assert await backend.dispatch(request) == "ext-42"

    sent = seen[0]
    assert sent.url.path == "/kickoff"
    assert sent.headers["Authorization"] == "Bearer secret-token"
    payload = json.loads(sent.content)
    assert payload["agent_type"] == "backend"
    assert payload["mode"] == "task"
    assert payload["project_data"] == {"name": "Demo"}
    assert payload["task_data"]["title"] == "Build API"
    assert payload["task_data"]["priority"] == "high"
    await client.aclose()


@pytest.mark.asyncio
async def test_dispatch_server_error_is_transient() -> None:
    backend, client = _backend(lambda request: httpx.Response(503, text="Service Unavailable"))

    with pytest.raises(BackendDispatchFailed) as error:
        await backend.dispatch(_request())

    assert error.value.transient is True
    assert error.value.failure_class == FailureClass.BACKEND_TRANSIENT
    await client.aclose()


@pytest.mark.asyncio
async def test_dispatch_auth_error_is_not_transient() -> None:
    backend, client = _backend(lambda request: httpx.Response(401, text="Bad credentials"))

    with pytest.raises(BackendDispatchFailed) as error:
        await backend.dispatch(_request())

    assert error.value.transient is False
    assert error.value.failure_class == FailureClass.ACCESS_OR_AUTH
    await client.aclose()


@pytest.mark.asyncio
async def test_dispatch_without_task_id_fails() -> None:
    backend, client = _backend(lambda request: httpx.Response(200, json={"ok": True}))

    with pytest.raises(BackendDispatchFailed, match="no task_id"):
        await backend.dispatch(_request())
    await client.aclose()


@pytest.mark.asyncio
async def test_dispatch_connection_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    backend, client = _backend(handler)

    with pytest.raises(BackendDispatchFailed) as error:
        await backend.dispatch(_request())

    assert error.value.transient is True
    await client.aclose()


@pytest.mark.asyncio
async def test_poll_maps_status_aliases_and_object_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/status/ext-1"
        return httpx.Response(200, json={"status": "SUCCEEDED", "result": {"raw": "done"}})

    backend, client = _backend(handler)

    result = await backend.poll_status("ext-1")

    assert result.status == RemoteStatus.COMPLETED
    assert result.result == "done"
    await client.aclose()


@pytest.mark.asyncio
async def test_poll_reports_running_and_failed() -> None:
    statuses = iter(
        [
            {"status": "in_progress"},
            {"status": "error", "error": "model crashed"},
        ],
    )
    backend, client = _backend(lambda request: httpx.Response(200, json=next(statuses)))

    running = await backend.poll_status("ext-1")
    failed = await backend.poll_status("ext-1")

    assert running.status == RemoteStatus.RUNNING
    assert failed.status == RemoteStatus.FAILED
    assert failed.error == "model crashed"
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="oops"),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json={"status": "exploded"}),
    ],
)
async def test_poll_problems_raise_poll_failed(response) -> None:
    backend, client = _backend(lambda request: response)

    with pytest.raises(BackendPollFailed):
        await backend.poll_status("ext-1")
    await client.aclose()


def test_normalize_result_prefers_text_fields() -> None:
    assert normalize_result(None) is None
    assert normalize_result("plain") == "plain"
    assert normalize_result({"output": "", "response": "answer"}) == "answer"
    assert normalize_result({"tokens": 3}) == '{"tokens": 3}'
