"""Runtime configuration for the execution backend, file store and bridge."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_GITHUB_TOKEN_PREFIXES = ("ghp_", "github_pat_")


@dataclass(slots=True)
class BackendSettings:
    """External task-execution service settings."""

    base_url: str = ""
    api_token: str = ""
    request_timeout_seconds: float = 30.0
    dispatch_timeout_seconds: float = 60.0
    max_retries: int = 0


@dataclass(slots=True)
class FileStoreSettings:
    """Versioned repository file store settings."""

    api_url: str = "https://api.github.com"
    owner: str = ""
    repo: str = ""
    token: str = ""
    default_branch: str = "main"
    verify_writes: bool = False
    commit_message_template: str = "Add {path} from {agent}"
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class BridgeSettings:
    """Poll loop, continuation and side-channel tunables."""

    poll_interval_seconds: float = 3.0
    poll_request_timeout_seconds: float = 30.0
    max_poll_seconds: float = 600.0
    continuation_delay_seconds: float = 3.0
    collaboration_probability: float = 0.1
    artifact_write_retries: int = 1
    feed_max_messages: int = 500


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    backend: BackendSettings = field(default_factory=BackendSettings)
    file_store: FileStoreSettings = field(default_factory=FileStoreSettings)
    bridge: BridgeSettings = field(default_factory=BridgeSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            backend=BackendSettings(
                base_url=os.getenv("CREW_ORCHESTRATOR_BACKEND_URL", "").strip(),
                api_token=os.getenv("CREW_ORCHESTRATOR_BACKEND_TOKEN", "").strip(),
                request_timeout_seconds=float(
                    os.getenv("CREW_ORCHESTRATOR_BACKEND_REQUEST_TIMEOUT_SECONDS", "30.0"),
                ),
                dispatch_timeout_seconds=float(
                    os.getenv("CREW_ORCHESTRATOR_BACKEND_DISPATCH_TIMEOUT_SECONDS", "60.0"),
                ),
                max_retries=int(os.getenv("CREW_ORCHESTRATOR_BACKEND_MAX_RETRIES", "0")),
            ),
            file_store=FileStoreSettings(
                api_url=os.getenv("CREW_ORCHESTRATOR_GITHUB_API_URL", "https://api.github.com"),
                owner=os.getenv("CREW_ORCHESTRATOR_GITHUB_OWNER", "").strip(),
                repo=os.getenv("CREW_ORCHESTRATOR_GITHUB_REPO", "").strip(),
                token=os.getenv("CREW_ORCHESTRATOR_GITHUB_TOKEN", "").strip(),
                default_branch=os.getenv("CREW_ORCHESTRATOR_GITHUB_BRANCH", "main").strip(),
                verify_writes=_env_bool("CREW_ORCHESTRATOR_VERIFY_WRITES", default=False),
                commit_message_template=os.getenv(
                    "CREW_ORCHESTRATOR_COMMIT_MESSAGE_TEMPLATE",
                    "Add {path} from {agent}",
                ),
                request_timeout_seconds=float(
                    os.getenv("CREW_ORCHESTRATOR_GITHUB_REQUEST_TIMEOUT_SECONDS", "30.0"),
                ),
            ),
            bridge=BridgeSettings(
                poll_interval_seconds=float(
                    os.getenv("CREW_ORCHESTRATOR_POLL_INTERVAL_SECONDS", "3.0"),
                ),
                poll_request_timeout_seconds=float(
                    os.getenv("CREW_ORCHESTRATOR_POLL_REQUEST_TIMEOUT_SECONDS", "30.0"),
                ),
                max_poll_seconds=float(os.getenv("CREW_ORCHESTRATOR_MAX_POLL_SECONDS", "600.0")),
                continuation_delay_seconds=float(
                    os.getenv("CREW_ORCHESTRATOR_CONTINUATION_DELAY_SECONDS", "3.0"),
                ),
                collaboration_probability=float(
                    os.getenv("CREW_ORCHESTRATOR_COLLABORATION_PROBABILITY", "0.1"),
                ),
                artifact_write_retries=int(
                    os.getenv("CREW_ORCHESTRATOR_ARTIFACT_WRITE_RETRIES", "1"),
                ),
                feed_max_messages=int(os.getenv("CREW_ORCHESTRATOR_FEED_MAX_MESSAGES", "500")),
            ),
        )

    def validate_for_backend(self) -> None:
        """Raise configuration error if the execution backend cannot be reached."""

        _validate_http_url(self.backend.base_url, name="CREW_ORCHESTRATOR_BACKEND_URL")
        if self.backend.request_timeout_seconds <= 0:
            raise ValueError("CREW_ORCHESTRATOR_BACKEND_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.backend.dispatch_timeout_seconds <= 0:
            raise ValueError("CREW_ORCHESTRATOR_BACKEND_DISPATCH_TIMEOUT_SECONDS must be > 0.")
        if self.backend.max_retries < 0:
            raise ValueError("CREW_ORCHESTRATOR_BACKEND_MAX_RETRIES must be >= 0.")

    def validate_for_file_store(self) -> None:
        """Raise configuration error if the GitHub file store is not fully configured."""

        _validate_http_url(self.file_store.api_url, name="CREW_ORCHESTRATOR_GITHUB_API_URL")
        if not self.file_store.owner or not self.file_store.repo:
            raise ValueError(
                "Repository is required. "
                "Set CREW_ORCHESTRATOR_GITHUB_OWNER and CREW_ORCHESTRATOR_GITHUB_REPO.",
            )
        if not self.file_store.token:
            raise ValueError("CREW_ORCHESTRATOR_GITHUB_TOKEN is required.")
        if not self.file_store.token.startswith(_GITHUB_TOKEN_PREFIXES):
            logger.warning(
                "GitHub token format might be invalid; expected prefix %s",
                " or ".join(_GITHUB_TOKEN_PREFIXES),
            )
        if not self.file_store.default_branch:
            raise ValueError("CREW_ORCHESTRATOR_GITHUB_BRANCH must not be empty.")

    def validate_for_bridge(self) -> None:
        """Raise configuration error for out-of-range bridge tunables."""

        bridge = self.bridge
        if bridge.poll_interval_seconds < 0:
            raise ValueError("CREW_ORCHESTRATOR_POLL_INTERVAL_SECONDS must be >= 0.")
        if bridge.poll_request_timeout_seconds <= 0:
            raise ValueError("CREW_ORCHESTRATOR_POLL_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if bridge.max_poll_seconds <= 0:
            raise ValueError("CREW_ORCHESTRATOR_MAX_POLL_SECONDS must be > 0.")
        if bridge.continuation_delay_seconds < 0:
            raise ValueError("CREW_ORCHESTRATOR_CONTINUATION_DELAY_SECONDS must be >= 0.")
        if not 0.0 <= bridge.collaboration_probability <= 1.0:
            raise ValueError(
                "CREW_ORCHESTRATOR_COLLABORATION_PROBABILITY must be within [0, 1].",
            )
        if bridge.artifact_write_retries < 0:
            raise ValueError("CREW_ORCHESTRATOR_ARTIFACT_WRITE_RETRIES must be >= 0.")
        if bridge.feed_max_messages <= 0:
            raise ValueError("CREW_ORCHESTRATOR_FEED_MAX_MESSAGES must be > 0.")


def _validate_http_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
