"""Extract code artifacts and draft tasks from free-text model replies.

Fenced code blocks are located by an ordered list of strategies, most specific
first. The first strategy that yields at least one block wins, so a block is
never counted twice under a looser pattern. Paths written in the reply always
win over the heuristic inference in :func:`infer_file_path`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from crew_orchestrator.orchestrator.errors import ExtractionAmbiguous
from crew_orchestrator.orchestrator.models import (
    AgentType,
    CodeArtifact,
    DraftTask,
    ExtractionResult,
    TaskPriority,
)

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "txt"
FALLBACK_IDENTIFIER = "code"


@dataclass(slots=True)
class FencedBlock:
    """Raw fenced block before trimming and path resolution."""

    language: str
    content: str
    path: str | None
    start: int


class ExtractionStrategy(Protocol):
    """One fence annotation convention."""

    name: str

    def find(self, text: str) -> list[FencedBlock] | None:
        """Return matched blocks, or ``None`` when the convention is absent."""
        raise NotImplementedError


class _RegexStrategy:
    def __init__(self, name: str, pattern: re.Pattern[str], *, has_path: bool) -> None:
        self.name = name
        self._pattern = pattern
        self._has_path = has_path

    def find(self, text: str) -> list[FencedBlock] | None:
        blocks: list[FencedBlock] = []
        for match in self._pattern.finditer(text):
            if self._has_path:
                language, path, content = match.group(1), match.group(2), match.group(3)
            else:
                language, path, content = match.group(1), None, match.group(2)
            blocks.append(
                FencedBlock(
                    language=(language or DEFAULT_LANGUAGE).lower(),
                    content=content,
                    path=path.strip() if path else None,
                    start=match.start(),
                ),
            )
        return blocks or None


BRACKETED_PATH = _RegexStrategy(
    "bracketed_path",
    re.compile(r"```[ \t]*([\w+#.-]*)[ \t]*\[([^\]\n]+)\][ \t]*\n(.*?)```", re.DOTALL),
    has_path=True,
)
LABELLED_PATH = _RegexStrategy(
    "labelled_path",
    re.compile(
        r"```[ \t]*([\w+#.-]*)[ \t]*\n"
        r"[ \t]*(?:(?://|#|--|<!--)[ \t]*)?(?:file)?path:[ \t]*(\S+?)[ \t]*(?:-->)?[ \t]*\n"
        r"(.*?)```",
        re.DOTALL | re.IGNORECASE,
    ),
    has_path=True,
)
BARE_FENCE = _RegexStrategy(
    "bare_fence",
    re.compile(r"```[ \t]*([\w+#.-]*)[^\n]*\n(.*?)```", re.DOTALL),
    has_path=False,
)

DEFAULT_STRATEGIES: tuple[ExtractionStrategy, ...] = (BRACKETED_PATH, LABELLED_PATH, BARE_FENCE)


def first_success(
    strategies: Sequence[ExtractionStrategy],
    text: str,
) -> tuple[str, list[FencedBlock]] | None:
    """Run strategies in order and return the first non-empty match set."""

    for strategy in strategies:
        blocks = strategy.find(text)
        if blocks:
            return strategy.name, blocks
    return None


_EXTENSIONS: dict[str, str] = {
    "typescript": ".ts",
    "ts": ".ts",
    "javascript": ".js",
    "js": ".js",
    "jsx": ".jsx",
    "tsx": ".tsx",
    "python": ".py",
    "py": ".py",
    "java": ".java",
    "ruby": ".rb",
    "go": ".go",
    "rust": ".rs",
    "cpp": ".cpp",
    "c++": ".cpp",
    "c": ".c",
    "php": ".php",
    "swift": ".swift",
    "kotlin": ".kt",
    "scala": ".scala",
    "html": ".html",
    "css": ".css",
    "scss": ".scss",
    "sql": ".sql",
    "yaml": ".yaml",
    "yml": ".yml",
    "json": ".json",
    "xml": ".xml",
    "md": ".md",
    "markdown": ".md",
    "sh": ".sh",
    "bash": ".sh",
    "shell": ".sh",
    "toml": ".toml",
    "txt": ".txt",
}
_TEMPLATED_EXTENSIONS = {".js": ".jsx", ".ts": ".tsx"}
_ASSET_LANGUAGES = frozenset({"html", "css", "scss"})

_COMPONENT_NAME = re.compile(
    r"\b(?:const|let)\s+([A-Z][A-Za-z0-9_]*)\s*(?::[^=]+)?=\s*(?:async\s*)?"
    r"\([^)]*\)\s*(?::[^=]+)?=>",
)
_DEFAULT_EXPORT_NAME = re.compile(
    r"\bexport\s+default\s+(?:async\s+)?(?:(?:class|function)\s+)?"
    r"(?!(?:class|function)\b)([A-Za-z_$][\w$]*)",
)
_CLASS_NAME = re.compile(r"\b(?:class|interface)\s+([A-Za-z_]\w*)")
_FUNCTION_NAME = re.compile(r"\b(?:function|def|func|fn)\s+([A-Za-z_]\w*)")
_PACKAGE_NAME = re.compile(r"^\s*package\s+([\w.]+)", re.MULTILINE)

_IDENTIFIER_PATTERNS: tuple[re.Pattern[str], ...] = (
    _COMPONENT_NAME,
    _DEFAULT_EXPORT_NAME,
    _CLASS_NAME,
    _FUNCTION_NAME,
)

_MARKUP = re.compile(r"</[A-Za-z][\w.]*>|<[A-Za-z][\w.]*(?:\s[^<>]*)?/>")
_TEST_SHAPE = re.compile(
    r"\b(?:describe|it|test)\s*\(|\bdef\s+test_|\bimport\s+pytest\b|@Test\b|\bfunc\s+Test",
)
_IMPORT_LINE = re.compile(r"^\s*(?:import\b|from\s+\S+\s+import\b)", re.MULTILINE)
_EXPORT_LINE = re.compile(r"^\s*export\b", re.MULTILINE)
_DEFAULT_EXPORT = re.compile(r"\bexport\s+default\b")
_COMPONENT_BODY = re.compile(r"\b(?:function|class)\b|=>")


def resolve_identifier(content: str) -> str:
    """Best-effort identifier for a code block.

    Raises :class:`ExtractionAmbiguous` when nothing recognizable is declared.
    """

    for pattern in _IDENTIFIER_PATTERNS:
        match = pattern.search(content)
        if match is not None:
            return match.group(1)
    package = _PACKAGE_NAME.search(content)
    if package is not None:
        return package.group(1).split(".")[-1]
    raise ExtractionAmbiguous("No component, export, class, function or package name found")


def to_kebab_case(name: str) -> str:
    return re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", name).lower()


def infer_file_path(language: str, content: str) -> str:
    """Heuristic destination path for a block without an explicit path."""

    try:
        identifier = resolve_identifier(content)
    except ExtractionAmbiguous:
        logger.debug("No identifier inferable for %s block, using fallback", language)
        identifier = FALLBACK_IDENTIFIER

    normalized_language = language.lower()
    extension = _EXTENSIONS.get(normalized_language, ".txt")
    if extension in _TEMPLATED_EXTENSIONS and _MARKUP.search(content):
        extension = _TEMPLATED_EXTENSIONS[extension]

    return f"{_infer_directory(normalized_language, content)}{to_kebab_case(identifier)}{extension}"


def _infer_directory(language: str, content: str) -> str:
    if _TEST_SHAPE.search(content):
        return "tests/"
    if language in _ASSET_LANGUAGES:
        return "src/assets/"
    if _IMPORT_LINE.search(content) and _EXPORT_LINE.search(content):
        return "src/lib/"
    if _MARKUP.search(content) or (
        _DEFAULT_EXPORT.search(content) and _COMPONENT_BODY.search(content)
    ):
        return "src/components/"
    return "src/"


def extract_code_artifacts(
    text: str,
    *,
    strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES,
) -> tuple[list[CodeArtifact], str | None]:
    """Ordered artifacts from fenced blocks, plus the name of the winning strategy."""

    found = first_success(strategies, text)
    if found is None:
        return [], None
    strategy_name, blocks = found
    artifacts: list[CodeArtifact] = []
    for block in blocks:
        content = block.content.strip()
        if not content:
            continue
        if block.path:
            artifacts.append(CodeArtifact(language=block.language, path=block.path, content=content))
            continue
        artifacts.append(
            CodeArtifact(
                language=block.language,
                path=infer_file_path(block.language, content),
                content=content,
                path_inferred=True,
            ),
        )
    return artifacts, strategy_name


_TASK_RECORD_TEMPLATE = (
    r"^[ \t]*{task}:[ \t]*(?P<title>[^\n]+?)[ \t]*\n"
    r"[ \t]*{assigned}:[ \t]*(?P<assigned>[^\n]+?)[ \t]*\n"
    r"[ \t]*{description}:[ \t]*(?P<description>[^\n]+?)[ \t]*\n"
    r"[ \t]*{priority}:[ \t]*(?P<priority>\w+)"
)
_TASK_RECORD_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        _TASK_RECORD_TEMPLATE.format(
            task="Task",
            assigned="Assigned to",
            description="Description",
            priority="Priority",
        ),
        re.MULTILINE,
    ),
    re.compile(
        _TASK_RECORD_TEMPLATE.format(
            task="TASK",
            assigned="ASSIGNED TO",
            description="DESCRIPTION",
            priority="PRIORITY",
        ),
        re.MULTILINE,
    ),
)

_AGENT_TYPE_HINTS: tuple[tuple[tuple[str, ...], AgentType], ...] = (
    (("front",), AgentType.FRONTEND),
    (("back", "api"), AgentType.BACKEND),
    (("test", "qa"), AgentType.TESTING),
    (("devops", "deploy"), AgentType.DEVOPS),
    (("arch",), AgentType.ARCHITECT),
)


def map_agent_type(assigned_to: str) -> AgentType | None:
    """Map free-text assignee ("Frontend Agent", "QA") to an agent type."""

    normalized = assigned_to.strip().lower()
    for hints, agent_type in _AGENT_TYPE_HINTS:
        if any(hint in normalized for hint in hints):
            return agent_type
    return None


def normalize_priority(raw: str) -> TaskPriority:
    try:
        return TaskPriority(raw.strip().lower())
    except ValueError:
        return TaskPriority.MEDIUM


def extract_draft_tasks(text: str) -> list[DraftTask]:
    """Draft tasks from four-line ``Task/Assigned to/Description/Priority`` records."""

    matches = sorted(
        (match for pattern in _TASK_RECORD_PATTERNS for match in pattern.finditer(text)),
        key=lambda match: match.start(),
    )
    return [
        DraftTask(
            title=match.group("title"),
            assigned_to=match.group("assigned"),
            description=match.group("description"),
            priority=normalize_priority(match.group("priority")),
            agent_type=map_agent_type(match.group("assigned")),
        )
        for match in matches
    ]


def extract(text: str) -> ExtractionResult:
    """Artifacts and draft tasks found in one model reply."""

    artifacts, strategy = extract_code_artifacts(text)
    return ExtractionResult(
        artifacts=artifacts,
        drafts=extract_draft_tasks(text),
        strategy=strategy,
    )
