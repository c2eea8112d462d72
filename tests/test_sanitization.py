from __future__ import annotations

import allure

from crew_orchestrator.orchestrator.sanitization import (
    FEED_PREVIEW_CHARS,
    TRUNCATION_MARK,
    sanitize_preview,
)

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Backend Failures"),
]


def test_redacts_tokens_keys_and_emails() -> None:
    text = (
        "Authorization: Bearer abcdef1234567890 failed for ops@example.com; "
        "github token ghp_ABCDEFGHIJKLMNOPQRST1234 and sk-proj-12345678abcd leaked, "
        "see https://api.example.com/run?token=xyz&page=2"
    )

    sanitized = sanitize_preview(text)

    assert "abcdef1234567890" not in sanitized
    assert "Bearer [redacted-token]" in sanitized
    assert "ops@example.com" not in sanitized
    assert "ghp_ABCDEFGHIJKLMNOPQRST1234" not in sanitized
    assert "sk-proj-12345678abcd" not in sanitized
    assert "?token=[redacted]&page=2" in sanitized


def test_redacts_github_token_scheme_and_openrouter_key() -> None:
    sanitized = sanitize_preview(
        "401 with Authorization: token abc.def-123 using sk-or-v1-0123456789abcdef",
    )

    assert "abc.def-123" not in sanitized
    assert "Authorization: token [redacted-token]" in sanitized
    assert "0123456789abcdef" not in sanitized


def test_redacts_named_secret_assignments() -> None:
    sanitized = sanitize_preview(
        "config error: CREW_ORCHESTRATOR_GITHUB_TOKEN=abc123 and OPENROUTER_API_KEY: 'k-999'",
    )

    assert "abc123" not in sanitized
    assert "k-999" not in sanitized
    assert "CREW_ORCHESTRATOR_GITHUB_TOKEN=[redacted-secret]" in sanitized
    assert "OPENROUTER_API_KEY=[redacted-secret]" in sanitized


def test_plain_error_text_is_left_alone() -> None:
    assert sanitize_preview("  invalid token provided  ") == "invalid token provided"


def test_empty_and_oversized_inputs() -> None:
    assert sanitize_preview("   ") == ""
    assert sanitize_preview("x" * 50, max_chars=10) == "x" * 9 + TRUNCATION_MARK

    clamped = sanitize_preview("y" * 2_000)
    assert len(clamped) == FEED_PREVIEW_CHARS
    assert clamped.endswith(TRUNCATION_MARK)
