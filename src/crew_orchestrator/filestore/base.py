"""Raw repository contents interface used by the versioned file store."""

from __future__ import annotations

from typing import Protocol

from crew_orchestrator.filestore.models import FileEntry, FileRecord


class ContentsClient(Protocol):
    """CRUD on files keyed by ``(path, ref)`` with content-hash version tokens.

    ``put_file`` with ``version_token=None`` creates a new file; otherwise the
    token must match the stored one. Mismatches raise ``VersionConflict``.
    """

    async def get_file(self, path: str, ref: str) -> FileRecord | None:
        """Current record, or ``None`` when the path does not exist."""
        raise NotImplementedError

    async def put_file(
        self,
        path: str,
        content: str,
        message: str,
        ref: str,
        version_token: str | None,
    ) -> str:
        """Create or conditionally update a file; returns the new token."""
        raise NotImplementedError

    async def delete_file(self, path: str, message: str, ref: str, version_token: str) -> None:
        """Conditionally delete a file."""
        raise NotImplementedError

    async def list_directory(self, directory: str, ref: str) -> list[FileEntry]:
        """Entries directly under ``directory``; empty when it does not exist."""
        raise NotImplementedError
