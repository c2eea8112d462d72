"""In-memory contents client keyed by branch, with git-style content hashes."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, replace

from crew_orchestrator.filestore.models import FileEntry, FileRecord
from crew_orchestrator.orchestrator.errors import VersionConflict


def content_token(content: str) -> str:
    """Git blob SHA-1 of the UTF-8 content."""

    data = content.encode("utf-8")
    header = f"blob {len(data)}\0".encode()
    return hashlib.sha1(header + data, usedforsecurity=False).hexdigest()


@dataclass(slots=True)
class Revision:
    """Audit entry for one accepted change."""

    ref: str
    path: str
    action: str
    message: str
    version_token: str


class InMemoryContentsClient:
    """Session-local repository used for offline runs and tests."""

    def __init__(self) -> None:
        self._branches: dict[str, dict[str, FileRecord]] = {}
        self.revisions: list[Revision] = []

    async def get_file(self, path: str, ref: str) -> FileRecord | None:
        record = self._branches.get(ref, {}).get(_normalize(path))
        return replace(record) if record is not None else None

    async def put_file(
        self,
        path: str,
        content: str,
        message: str,
        ref: str,
        version_token: str | None,
    ) -> str:
        path = _normalize(path)
        files = self._branches.setdefault(ref, {})
        current = files.get(path)
        if current is None and version_token is not None:
            raise VersionConflict(path, f"{path} does not exist on {ref}")
        if current is not None and version_token is None:
            raise VersionConflict(path, f"{path} already exists on {ref}; version token required")
        if current is not None and current.version_token != version_token:
            raise VersionConflict(path, f"Stale version token for {path} on {ref}")

        token = content_token(content)
        if current is None:
            action = "create"
        elif current.version_token == token:
            action = "no_change"
        else:
            action = "update"
        files[path] = FileRecord(path=path, content=content, version_token=token)
        self.revisions.append(
            Revision(ref=ref, path=path, action=action, message=message, version_token=token),
        )
        return token

    async def delete_file(self, path: str, message: str, ref: str, version_token: str) -> None:
        path = _normalize(path)
        files = self._branches.get(ref, {})
        current = files.get(path)
        if current is None or current.version_token != version_token:
            raise VersionConflict(path, f"Stale version token deleting {path} on {ref}")
        del files[path]
        self.revisions.append(
            Revision(ref=ref, path=path, action="delete", message=message, version_token=version_token),
        )

    async def list_directory(self, directory: str, ref: str) -> list[FileEntry]:
        prefix = _normalize(directory)
        prefix = f"{prefix}/" if prefix else ""
        files: dict[str, FileEntry] = {}
        dirs: dict[str, FileEntry] = {}
        for path, record in self._branches.get(ref, {}).items():
            if not path.startswith(prefix):
                continue
            head, _, rest = path[len(prefix) :].partition("/")
            if rest:
                dirs.setdefault(head, FileEntry(path=f"{prefix}{head}", name=head, kind="dir"))
            else:
                files[head] = FileEntry(
                    path=path,
                    name=head,
                    kind="file",
                    version_token=record.version_token,
                )
        return sorted([*dirs.values(), *files.values()], key=lambda entry: entry.path)


def _normalize(path: str) -> str:
    return path.strip().strip("/")
