from __future__ import annotations

import allure

from crew_orchestrator.orchestrator.failure_classifier import (
    BACKEND_FAILURE_CLASSIFIER_VERSION,
    classify_backend_failure,
)
from crew_orchestrator.orchestrator.models import FailureClass

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Backend Failures"),
]


def test_classifier_version_is_stable() -> None:
    assert BACKEND_FAILURE_CLASSIFIER_VERSION == 1


def test_classifier_prefers_billing_over_transient_status() -> None:
    classified = classify_backend_failure(message="Quota exceeded for this project", status_code=503)

    assert classified.failure_class == FailureClass.BILLING_OR_QUOTA
    assert classified.matched_rule == "billing_or_quota"
    assert classified.matched_pattern == "quota"
    assert classified.transient is False


def test_classifier_maps_payment_required_status() -> None:
    classified = classify_backend_failure(message="", status_code=402)

    assert classified.failure_class == FailureClass.BILLING_OR_QUOTA
    assert classified.matched_pattern is None


def test_classifier_maps_auth_status_and_text() -> None:
    assert (
        classify_backend_failure(message="nope", status_code=403).failure_class
        == FailureClass.ACCESS_OR_AUTH
    )
    assert (
        classify_backend_failure(message="Invalid API key provided").failure_class
        == FailureClass.ACCESS_OR_AUTH
    )


def test_classifier_maps_model_unavailable() -> None:
    classified = classify_backend_failure(message="Unknown model requested")

    assert classified.failure_class == FailureClass.MODEL_NOT_AVAILABLE
    assert classified.reason_code == "backend_model_not_available"


def test_classifier_maps_rate_limit_to_backend_transient() -> None:
    classified = classify_backend_failure(message="Too many requests", status_code=None)

    assert classified.failure_class == FailureClass.BACKEND_TRANSIENT
    assert classified.matched_rule == "rate_limit_transient"
    assert classified.transient is True


def test_classifier_uses_transient_status_code_without_pattern() -> None:
    classified = classify_backend_failure(message="Bad Gateway", status_code=502)

    assert classified.failure_class == FailureClass.BACKEND_TRANSIENT
    assert classified.matched_rule == "transient_status_code"


def test_classifier_falls_back_to_non_retryable() -> None:
    classified = classify_backend_failure(message="invalid payload shape", status_code=400)

    assert classified.failure_class == FailureClass.BACKEND_NON_RETRYABLE
    assert classified.to_event_details() == {
        "classifier_version": 1,
        "failure_class": "backend_non_retryable",
        "reason_code": "backend_non_retryable",
        "matched_rule": "fallback_non_retryable",
        "matched_pattern": None,
    }
