"""Deterministic classification of execution backend error text."""

from __future__ import annotations

from dataclasses import dataclass

from crew_orchestrator.orchestrator.models import FailureClass

BACKEND_FAILURE_CLASSIFIER_VERSION = 1

TRANSIENT_STATUS_CODES: tuple[int, ...] = (408, 425, 429, 500, 502, 503, 504)

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "insufficient",
    "billing",
    "payment",
    "credits",
    "usage limit",
    "exceeded",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "invalid token",
    "authentication",
    "bad credentials",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
)
_RATE_LIMIT_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "please retry",
    "try again later",
)
_GENERIC_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "temporarily unavailable",
    "temporary failure",
    "connection reset",
    "connection refused",
    "network error",
    "timed out",
    "could not resolve host",
)


@dataclass(slots=True)
class BackendFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    reason_code: str
    matched_rule: str
    matched_pattern: str | None

    @property
    def transient(self) -> bool:
        return self.failure_class in {FailureClass.BACKEND_TRANSIENT, FailureClass.TIMEOUT}

    def to_event_details(self) -> dict[str, object]:
        """Serialize classifier diagnostics for feed message details."""

        return {
            "classifier_version": BACKEND_FAILURE_CLASSIFIER_VERSION,
            "failure_class": self.failure_class.value,
            "reason_code": self.reason_code,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
        }


def classify_backend_failure(
    *,
    message: str,
    status_code: int | None = None,
) -> BackendFailureClassification:
    """Classify backend error text and optional HTTP status into a failure class."""

    haystack = message.lower()

    pattern = _first_match(haystack, _BILLING_OR_QUOTA_PATTERNS)
    if pattern is not None or status_code == 402:  # noqa: PLR2004
        return BackendFailureClassification(
            failure_class=FailureClass.BILLING_OR_QUOTA,
            reason_code="backend_billing_or_quota",
            matched_rule="billing_or_quota",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _ACCESS_OR_AUTH_PATTERNS)
    if pattern is not None or status_code in {401, 403}:
        return BackendFailureClassification(
            failure_class=FailureClass.ACCESS_OR_AUTH,
            reason_code="backend_access_or_auth",
            matched_rule="access_or_auth",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _MODEL_NOT_AVAILABLE_PATTERNS)
    if pattern is not None:
        return BackendFailureClassification(
            failure_class=FailureClass.MODEL_NOT_AVAILABLE,
            reason_code="backend_model_not_available",
            matched_rule="model_not_available",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _RATE_LIMIT_TRANSIENT_PATTERNS)
    if pattern is not None or status_code == 429:  # noqa: PLR2004
        return BackendFailureClassification(
            failure_class=FailureClass.BACKEND_TRANSIENT,
            reason_code="backend_rate_limit_transient",
            matched_rule="rate_limit_transient",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _GENERIC_TRANSIENT_PATTERNS)
    if pattern is not None or status_code in TRANSIENT_STATUS_CODES:
        return BackendFailureClassification(
            failure_class=FailureClass.BACKEND_TRANSIENT,
            reason_code="backend_transient",
            matched_rule=(
                "transient_status_code"
                if status_code in TRANSIENT_STATUS_CODES and pattern is None
                else "generic_transient"
            ),
            matched_pattern=pattern,
        )

    return BackendFailureClassification(
        failure_class=FailureClass.BACKEND_NON_RETRYABLE,
        reason_code="backend_non_retryable",
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
