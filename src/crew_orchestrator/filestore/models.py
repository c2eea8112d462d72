"""File store records."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class FileRecord:
    """Stored file content with its optimistic-concurrency token."""

    path: str
    content: str
    version_token: str


@dataclass(slots=True)
class FileEntry:
    """One directory listing entry."""

    path: str
    name: str
    kind: str
    version_token: str | None = None


@dataclass(slots=True)
class WriteResult:
    """Outcome of one successful write."""

    path: str
    ref: str
    version_token: str
    created: bool
    changed: bool | None = None
    verified: bool | None = None
    warning: str | None = None
