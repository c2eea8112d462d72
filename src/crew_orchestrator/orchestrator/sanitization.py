"""Redaction of credentials in error text before it reaches the message feed.

Backend and GitHub errors often echo request headers, URLs or environment
values back at us. Feed messages are shown to users, so anything that looks
like a credential is masked and the text is clamped to a preview length.
"""

from __future__ import annotations

import re
from collections.abc import Callable

FEED_PREVIEW_CHARS = 500
TRUNCATION_MARK = "…"

_Replacement = str | Callable[[re.Match[str]], str]

_REDACTIONS: tuple[tuple[re.Pattern[str], _Replacement], ...] = (
    # Authorization headers: GitHub accepts both "token" and "Bearer" schemes.
    (
        re.compile(r"(?i)\b(authorization\s*:\s*)(bearer|token|basic)\s+[^\s,;]+"),
        r"\1\2 [redacted-token]",
    ),
    (
        re.compile(r"(?i)\b(bearer)\s+[a-z0-9._\-]{8,}\b"),
        r"\1 [redacted-token]",
    ),
    (
        re.compile(r"\bgh[oprsu]_[A-Za-z0-9]{16,}\b|\bgithub_pat_[A-Za-z0-9_]{16,}\b"),
        "[redacted-token]",
    ),
    # OpenRouter (sk-or-v1-...) and OpenAI-style (sk-, sk-proj-) keys.
    (
        re.compile(r"\bsk-(?:or-v1-|proj-)?[A-Za-z0-9_\-]{8,}"),
        "[redacted-token]",
    ),
    (
        re.compile(r"(?i)([?&](?:token|access_token|key|api_key|signature|auth)=)[^&\s]+"),
        r"\1[redacted]",
    ),
    # CREW_ORCHESTRATOR_GITHUB_TOKEN=..., OPENROUTER_API_KEY: "...", db_password=...
    (
        re.compile(
            r"(?i)(?<![?&\w])([a-z0-9_]*(?:token|api_key|secret|password))"
            r"\s*[:=]\s*['\"]?[^'\"\s&]+['\"]?",
        ),
        lambda match: f"{match.group(1)}=[redacted-secret]",
    ),
    (
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
        "[redacted-email]",
    ),
)


def redact_secrets(text: str) -> str:
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def sanitize_preview(text: str, *, max_chars: int = FEED_PREVIEW_CHARS) -> str:
    """Redacted, stripped text clamped to ``max_chars`` (marked when cut)."""

    compact = text.strip()
    if not compact:
        return ""
    redacted = redact_secrets(compact)
    if len(redacted) <= max_chars:
        return redacted
    return redacted[: max(max_chars - len(TRUNCATION_MARK), 0)] + TRUNCATION_MARK
