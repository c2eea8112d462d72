"""REST execution backend: ``POST /kickoff`` and ``GET /status/{id}``."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from crew_orchestrator.orchestrator.backend.base import DispatchRequest, PollResult
from crew_orchestrator.orchestrator.errors import BackendDispatchFailed, BackendPollFailed
from crew_orchestrator.orchestrator.failure_classifier import classify_backend_failure
from crew_orchestrator.orchestrator.models import FailureClass, RemoteStatus

logger = logging.getLogger(__name__)

_STATUS_ALIASES: dict[str, RemoteStatus] = {
    "pending": RemoteStatus.QUEUED,
    "queued": RemoteStatus.QUEUED,
    "in_progress": RemoteStatus.RUNNING,
    "running": RemoteStatus.RUNNING,
    "completed": RemoteStatus.COMPLETED,
    "succeeded": RemoteStatus.COMPLETED,
    "failed": RemoteStatus.FAILED,
    "error": RemoteStatus.FAILED,
}
_RESULT_TEXT_KEYS = ("response", "output", "raw", "result")


class HttpExecutionBackend:
    """Execution service client over a caller-owned ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def dispatch(self, request: DispatchRequest) -> str:
        try:
            response = await self._client.post("/kickoff", json=request.to_payload())
            response.raise_for_status()
        except httpx.HTTPStatusError as error:
            body = error.response.text
            classification = classify_backend_failure(
                message=body,
                status_code=error.response.status_code,
            )
            raise BackendDispatchFailed(
                f"Execution backend rejected dispatch ({error.response.status_code}): {body}",
                transient=classification.transient,
                classification=classification,
            ) from error
        except httpx.TimeoutException as error:
            raise BackendDispatchFailed(
                f"Execution backend dispatch timed out: {error}",
                transient=True,
                failure_class=FailureClass.TIMEOUT,
            ) from error
        except httpx.HTTPError as error:
            classification = classify_backend_failure(message=str(error))
            raise BackendDispatchFailed(
                f"Execution backend unreachable: {error}",
                transient=classification.transient,
                classification=classification,
            ) from error

        payload = _json_object(response)
        task_id = payload.get("task_id") if payload is not None else None
        if not isinstance(task_id, str) or not task_id:
            raise BackendDispatchFailed(
                "Execution backend response has no task_id",
                transient=False,
                failure_class=FailureClass.BACKEND_NON_RETRYABLE,
            )
        logger.debug("Dispatched %s for agent %s as %s", request.mode, request.agent.name, task_id)
        return task_id

    async def poll_status(self, external_task_id: str) -> PollResult:
        try:
            response = await self._client.get(f"/status/{external_task_id}")
            response.raise_for_status()
        except httpx.HTTPError as error:
            raise BackendPollFailed(f"Status poll for {external_task_id} failed: {error}") from error

        payload = _json_object(response)
        if payload is None:
            raise BackendPollFailed(f"Status poll for {external_task_id} returned non-object JSON")
        raw_status = str(payload.get("status", "")).strip().lower()
        status = _STATUS_ALIASES.get(raw_status)
        if status is None:
            raise BackendPollFailed(
                f"Status poll for {external_task_id} returned unknown status {raw_status!r}",
            )
        error_text = payload.get("error")
        return PollResult(
            status=status,
            result=normalize_result(payload.get("result")),
            error=str(error_text) if error_text else None,
        )


def normalize_result(result: Any) -> str | None:
    """Reply text from a string or object result payload."""

    if result is None:
        return None
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        for key in _RESULT_TEXT_KEYS:
            value = result.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return json.dumps(result, ensure_ascii=False)


def _json_object(response: httpx.Response) -> dict[str, Any] | None:
    try:
        parsed = response.json()
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
