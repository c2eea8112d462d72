"""In-memory message feed: the only channel through which the UI learns of progress."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from crew_orchestrator.common import utc_now
from crew_orchestrator.orchestrator.models import FeedMessage, MessageKind

logger = logging.getLogger(__name__)

FeedListener = Callable[[FeedMessage], None]

SYSTEM_SENDER = "System"
USER_SENDER = "You"


class MessageFeed:
    """Bounded, append-only message stream with synchronous listeners."""

    def __init__(self, *, max_messages: int = 500) -> None:
        self._messages: deque[FeedMessage] = deque(maxlen=max_messages)
        self._listeners: list[FeedListener] = []
        self._next_id = 1

    def post(  # noqa: PLR0913
        self,
        *,
        sender: str,
        content: str,
        kind: MessageKind = MessageKind.TEXT,
        agent_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> FeedMessage:
        """Append one message and notify listeners."""

        message = FeedMessage(
            message_id=self._next_id,
            sender=sender,
            content=content,
            kind=kind,
            created_at=utc_now(),
            agent_id=agent_id,
            details=dict(details or {}),
        )
        self._next_id += 1
        self._messages.append(message)
        for listener in tuple(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Feed listener failed for message %s", message.message_id)
        return message

    def subscribe(self, listener: FeedListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def messages(self, *, kind: MessageKind | None = None) -> tuple[FeedMessage, ...]:
        """Copies of retained messages, oldest first."""

        return tuple(
            replace(message, details=dict(message.details))
            for message in self._messages
            if kind is None or message.kind == kind
        )

    def __len__(self) -> int:
        return len(self._messages)
