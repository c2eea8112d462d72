from __future__ import annotations

import logging

import allure
import pytest

from crew_orchestrator.config import (
    BackendSettings,
    BridgeSettings,
    FileStoreSettings,
    Settings,
)

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Configuration"),
]


def test_from_env_defaults(monkeypatch) -> None:
    for name in (
        "CREW_ORCHESTRATOR_BACKEND_URL",
        "CREW_ORCHESTRATOR_GITHUB_BRANCH",
        "CREW_ORCHESTRATOR_VERIFY_WRITES",
        "CREW_ORCHESTRATOR_POLL_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.backend.base_url == ""
    assert settings.backend.max_retries == 0
    assert settings.file_store.default_branch == "main"
    assert settings.file_store.verify_writes is False
    assert settings.file_store.commit_message_template == "Add {path} from {agent}"
    assert settings.bridge.poll_interval_seconds == 3.0
    assert settings.bridge.max_poll_seconds == 600.0


def test_from_env_reads_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CREW_ORCHESTRATOR_BACKEND_URL", " https://crew.example.com ")
    monkeypatch.setenv("CREW_ORCHESTRATOR_GITHUB_OWNER", "acme")
    monkeypatch.setenv("CREW_ORCHESTRATOR_GITHUB_BRANCH", "develop")
    monkeypatch.setenv("CREW_ORCHESTRATOR_VERIFY_WRITES", "yes")
    monkeypatch.setenv("CREW_ORCHESTRATOR_POLL_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("CREW_ORCHESTRATOR_ARTIFACT_WRITE_RETRIES", "3")

    settings = Settings.from_env()

    assert settings.backend.base_url == "https://crew.example.com"
    assert settings.file_store.owner == "acme"
    assert settings.file_store.default_branch == "develop"
    assert settings.file_store.verify_writes is True
    assert settings.bridge.poll_interval_seconds == 2.5
    assert settings.bridge.artifact_write_retries == 3


def test_invalid_boolean_env_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("CREW_ORCHESTRATOR_VERIFY_WRITES", "maybe")

    with pytest.raises(ValueError, match="CREW_ORCHESTRATOR_VERIFY_WRITES"):
        Settings.from_env()


def test_validate_for_backend_requires_absolute_url() -> None:
    with pytest.raises(ValueError, match="CREW_ORCHESTRATOR_BACKEND_URL"):
        Settings(backend=BackendSettings(base_url="crew.example.com")).validate_for_backend()

    Settings(backend=BackendSettings(base_url="http://localhost:8000")).validate_for_backend()


def test_validate_for_backend_rejects_non_positive_dispatch_timeout() -> None:
    settings = Settings(
        backend=BackendSettings(base_url="https://crew.example.com", dispatch_timeout_seconds=0),
    )

    with pytest.raises(ValueError, match="DISPATCH_TIMEOUT_SECONDS"):
        settings.validate_for_backend()


def test_validate_for_file_store_requires_repository_and_token() -> None:
    with pytest.raises(ValueError, match="Repository is required"):
        Settings(file_store=FileStoreSettings(token="ghp_x")).validate_for_file_store()
    with pytest.raises(ValueError, match="CREW_ORCHESTRATOR_GITHUB_TOKEN"):
        Settings(
            file_store=FileStoreSettings(owner="acme", repo="site"),
        ).validate_for_file_store()


def test_unusual_token_prefix_only_warns(caplog) -> None:
    settings = Settings(file_store=FileStoreSettings(owner="acme", repo="site", token="abc123"))

    with caplog.at_level(logging.WARNING, logger="crew_orchestrator.config"):
        settings.validate_for_file_store()

    assert "token format might be invalid" in caplog.text


@pytest.mark.parametrize(
    ("bridge", "match"),
    [
        (BridgeSettings(poll_interval_seconds=-1), "POLL_INTERVAL_SECONDS"),
        (BridgeSettings(max_poll_seconds=0), "MAX_POLL_SECONDS"),
        (BridgeSettings(collaboration_probability=1.5), "COLLABORATION_PROBABILITY"),
        (BridgeSettings(artifact_write_retries=-1), "ARTIFACT_WRITE_RETRIES"),
        (BridgeSettings(feed_max_messages=0), "FEED_MAX_MESSAGES"),
    ],
)
def test_validate_for_bridge_rejects_out_of_range_values(bridge, match) -> None:
    with pytest.raises(ValueError, match=match):
        Settings(bridge=bridge).validate_for_bridge()


def test_zero_poll_interval_is_allowed() -> None:
    Settings(bridge=BridgeSettings(poll_interval_seconds=0)).validate_for_bridge()
