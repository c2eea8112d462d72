"""GitHub repository contents API client."""

from __future__ import annotations

import base64
import logging
from typing import Any
from urllib.parse import quote

import httpx

from crew_orchestrator.filestore.models import FileEntry, FileRecord
from crew_orchestrator.orchestrator.errors import FileStoreError, VersionConflict

logger = logging.getLogger(__name__)

_NOT_FOUND = 404
_CONFLICT = 409
_UNPROCESSABLE = 422


class GitHubContentsClient:
    """Files of one repository over a caller-owned ``httpx.AsyncClient``.

    The client must carry ``base_url`` (the API root) and the auth header.
    Version tokens are the blob SHAs GitHub returns on every read.
    """

    def __init__(self, client: httpx.AsyncClient, *, owner: str, repo: str) -> None:
        self._client = client
        self.owner = owner
        self.repo = repo

    async def get_file(self, path: str, ref: str) -> FileRecord | None:
        response = await self._request("GET", path, params={"ref": ref})
        if response.status_code == _NOT_FOUND:
            return None
        _raise_for_status(path, response)
        payload = _json(path, response)
        if not isinstance(payload, dict) or payload.get("type") != "file" or not payload.get("sha"):
            raise FileStoreError(path, f"{path} is not a file on {ref}")
        return FileRecord(
            path=str(payload.get("path", path)),
            content=_decode_content(path, payload),
            version_token=str(payload["sha"]),
        )

    async def put_file(
        self,
        path: str,
        content: str,
        message: str,
        ref: str,
        version_token: str | None,
    ) -> str:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": ref,
        }
        if version_token is not None:
            body["sha"] = version_token
        response = await self._request("PUT", path, json=body)
        _raise_for_status(path, response)
        payload = _json(path, response)
        try:
            return str(payload["content"]["sha"])
        except (KeyError, TypeError) as error:
            raise FileStoreError(path, f"GitHub response for {path} carries no blob sha") from error

    async def delete_file(self, path: str, message: str, ref: str, version_token: str) -> None:
        response = await self._request(
            "DELETE",
            path,
            json={"message": message, "sha": version_token, "branch": ref},
        )
        _raise_for_status(path, response)

    async def list_directory(self, directory: str, ref: str) -> list[FileEntry]:
        response = await self._request("GET", directory, params={"ref": ref})
        if response.status_code == _NOT_FOUND:
            return []
        _raise_for_status(directory, response)
        payload = _json(directory, response)
        if not isinstance(payload, list):
            raise FileStoreError(directory, f"{directory} is not a directory on {ref}")
        return [
            FileEntry(
                path=str(item.get("path", "")),
                name=str(item.get("name", "")),
                kind="dir" if item.get("type") == "dir" else "file",
                version_token=item.get("sha"),
            )
            for item in payload
            if isinstance(item, dict)
        ]

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"/repos/{self.owner}/{self.repo}/contents/{quote(path.strip('/'))}"
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as error:
            raise FileStoreError(path, f"GitHub request {method} {path} failed: {error}") from error


def _raise_for_status(path: str, response: httpx.Response) -> None:
    if response.is_success:
        return
    detail = response.text
    if response.status_code == _CONFLICT or (
        response.status_code == _UNPROCESSABLE and "sha" in detail.lower()
    ):
        raise VersionConflict(path, f"GitHub rejected version token for {path}: {detail}")
    logger.warning("GitHub contents API error %s for %s", response.status_code, path)
    raise FileStoreError(
        path,
        f"GitHub contents API error ({response.status_code}) for {path}: {detail}",
        status_code=response.status_code,
    )


def _json(path: str, response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as error:
        raise FileStoreError(path, f"GitHub returned malformed JSON for {path}") from error


def _decode_content(path: str, payload: dict[str, Any]) -> str:
    raw = payload.get("content") or ""
    if payload.get("encoding", "base64") != "base64":
        return str(raw)
    # binascii.Error and UnicodeDecodeError are both ValueError
    try:
        return base64.b64decode(str(raw)).decode("utf-8")
    except ValueError as error:
        raise FileStoreError(path, f"{path} is not UTF-8 text") from error
