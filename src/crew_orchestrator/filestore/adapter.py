"""Create-or-update file store with optimistic concurrency and read-back checks."""

from __future__ import annotations

import logging

from crew_orchestrator.filestore.base import ContentsClient
from crew_orchestrator.filestore.models import FileEntry, FileRecord, WriteResult
from crew_orchestrator.orchestrator.errors import VersionConflict

logger = logging.getLogger(__name__)


class VersionedFileStore:
    """Files keyed by ``(path, ref)``; ``ref`` defaults to the configured branch.

    Writes carry the version token observed by the preceding read, so a
    concurrent writer makes the write fail with ``VersionConflict`` instead
    of being overwritten. Callers re-read and retry.
    """

    def __init__(
        self,
        client: ContentsClient,
        *,
        default_ref: str = "main",
        verify_writes: bool = False,
    ) -> None:
        self._client = client
        self.default_ref = default_ref
        self.verify_writes = verify_writes

    async def read_record(self, path: str, ref: str | None = None) -> FileRecord | None:
        return await self._client.get_file(path, ref or self.default_ref)

    async def read(self, path: str, ref: str | None = None) -> str:
        """Current content; raises ``FileNotFoundError`` for a missing path."""

        ref = ref or self.default_ref
        record = await self._client.get_file(path, ref)
        if record is None:
            raise FileNotFoundError(f"{path} not found on {ref}")
        return record.content

    async def version_token(self, path: str, ref: str | None = None) -> str | None:
        record = await self.read_record(path, ref)
        return record.version_token if record is not None else None

    async def write(
        self,
        path: str,
        content: str,
        message: str,
        ref: str | None = None,
        *,
        verify: bool | None = None,
    ) -> WriteResult:
        """Create ``path`` or update it under the token seen just before."""

        ref = ref or self.default_ref
        current = await self._client.get_file(path, ref)
        result = await self.write_conditional(
            path,
            content,
            message,
            current.version_token if current is not None else None,
            ref,
            verify=verify,
        )
        result.changed = current is None or current.content != content
        return result

    async def write_conditional(
        self,
        path: str,
        content: str,
        message: str,
        version_token: str | None,
        ref: str | None = None,
        *,
        verify: bool | None = None,
    ) -> WriteResult:
        """Write only if the stored token still equals ``version_token``.

        ``None`` means the caller expects the path to be absent.
        """

        ref = ref or self.default_ref
        new_token = await self._client.put_file(path, content, message, ref, version_token)
        result = WriteResult(
            path=path,
            ref=ref,
            version_token=new_token,
            created=version_token is None,
        )
        logger.debug("Wrote %s on %s (token %s)", path, ref, new_token)
        if self.verify_writes if verify is None else verify:
            await self._verify(result, content)
        return result

    async def delete(self, path: str, message: str, ref: str | None = None) -> bool:
        """Delete ``path``; returns ``False`` when it was already absent."""

        ref = ref or self.default_ref
        current = await self._client.get_file(path, ref)
        if current is None:
            return False
        await self._client.delete_file(path, message, ref, current.version_token)
        return True

    async def list(self, directory: str = "", ref: str | None = None) -> list[FileEntry]:
        return await self._client.list_directory(directory, ref or self.default_ref)

    async def _verify(self, result: WriteResult, expected: str) -> None:
        try:
            stored = await self._client.get_file(result.path, result.ref)
        except VersionConflict as error:
            result.verified = False
            result.warning = f"Read-back of {result.path} conflicted: {error}"
            logger.warning(result.warning)
            return
        if stored is None or stored.content != expected:
            result.verified = False
            result.warning = f"Read-back of {result.path} on {result.ref} does not match written content"
            logger.warning(result.warning)
            return
        result.verified = True
