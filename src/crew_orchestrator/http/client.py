"""Async HTTP client factory with timeout, auth and transport retries."""

from __future__ import annotations

import httpx

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = "crew-orchestrator/1.0"


def build_async_client(  # noqa: PLR0913
    *,
    base_url: str,
    token: str = "",
    auth_scheme: str = "Bearer",
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_retries: int = 0,
    user_agent: str = DEFAULT_USER_AGENT,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build an ``httpx.AsyncClient`` bound to one remote service.

    ``max_retries`` only covers connection establishment; requests that reached
    the server are never replayed. Pass ``transport`` to substitute a mock.
    """

    base_headers = {"User-Agent": user_agent}
    if token:
        base_headers["Authorization"] = f"{auth_scheme} {token}"
    if headers:
        base_headers.update(headers)
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout_seconds, connect=DEFAULT_CONNECT_TIMEOUT_SECONDS),
        headers=base_headers,
        transport=transport or httpx.AsyncHTTPTransport(retries=max_retries),
        follow_redirects=True,
    )
