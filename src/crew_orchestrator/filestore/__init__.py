"""Versioned repository file store with optimistic concurrency."""

from crew_orchestrator.filestore.adapter import VersionedFileStore
from crew_orchestrator.filestore.base import ContentsClient
from crew_orchestrator.filestore.github import GitHubContentsClient
from crew_orchestrator.filestore.memory import InMemoryContentsClient, content_token
from crew_orchestrator.filestore.models import FileEntry, FileRecord, WriteResult

__all__ = [
    "ContentsClient",
    "FileEntry",
    "FileRecord",
    "GitHubContentsClient",
    "InMemoryContentsClient",
    "VersionedFileStore",
    "WriteResult",
    "content_token",
]
