"""Cosmetic peer-to-peer chatter between working agents.

Purely additive: it only posts feed messages and never touches agent or task
state, so it may be skipped or fail without affecting execution.
"""

from __future__ import annotations

import random
from collections.abc import Sequence

from crew_orchestrator.orchestrator.feed import MessageFeed
from crew_orchestrator.orchestrator.models import Agent, FeedMessage, MessageKind

_OPENERS: tuple[str, ...] = (
    "{target}, I've just wrapped up a piece of work. Anything on your side I should align with?",
    "{target}, quick sync: are the interfaces we agreed on still holding up for you?",
    "{target}, I pushed some changes that may touch your area. Let me know if anything breaks.",
    "{target}, do you need anything from me before you continue?",
)


class CollaborationSimulator:
    """Occasionally synthesizes a message from one working agent to another."""

    def __init__(
        self,
        *,
        feed: MessageFeed,
        probability: float,
        rng: random.Random | None = None,
    ) -> None:
        self.feed = feed
        self.probability = probability
        self._random = rng or random.Random()  # noqa: S311

    def maybe_exchange(self, working_agents: Sequence[Agent]) -> FeedMessage | None:
        """Post one peer message with the configured probability."""

        if len(working_agents) < 2:  # noqa: PLR2004
            return None
        if self._random.random() >= self.probability:
            return None
        source, target = self._random.sample(list(working_agents), 2)
        template = self._random.choice(_OPENERS)
        return self.feed.post(
            sender=source.name,
            content=template.format(target=target.name),
            kind=MessageKind.COLLABORATION,
            agent_id=source.agent_id,
            details={"target_agent_id": target.agent_id},
        )
