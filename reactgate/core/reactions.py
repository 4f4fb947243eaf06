"""
Reaction classification.

Every reaction added to a tracked prompt is a vote: names in the approve set
approve, anything else rejects. Removals are not votes.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from ..config.settings import DEFAULT_APPROVE_REACTIONS


@dataclass(frozen=True)
class ReactionEvent:
    """Inbound reaction as delivered by the Notifier."""

    message_id: str
    reactor_id: str
    reaction: str
    channel: str = ""


@dataclass(frozen=True)
class ReplyEvent:
    """A human reply to one correlation token."""

    token: str
    approver: str
    approved: bool


class ReactionClassifier:
    """Translates reactions into reply events."""

    def __init__(self, approve_reactions: Iterable[str] = DEFAULT_APPROVE_REACTIONS):
        self.approve_reactions = frozenset(approve_reactions)

    def is_approval(self, reaction: str) -> bool:
        # Slack reports skin tones as "+1::skin-tone-2"
        base = reaction.split("::", 1)[0]
        return base in self.approve_reactions

    def translate(self, event: ReactionEvent) -> ReplyEvent:
        return ReplyEvent(
            token=event.message_id,
            approver=event.reactor_id,
            approved=self.is_approval(event.reaction),
        )


def parse_reaction_added(event: Dict[str, Any]) -> Optional[ReactionEvent]:
    """
    Extract a ReactionEvent from a Slack ``reaction_added`` payload.

    Returns None for reactions on anything other than a message.
    """
    item = event.get("item") or {}
    if item.get("type", "message") != "message":
        return None

    ts = item.get("ts")
    user = event.get("user")
    reaction = event.get("reaction")
    if not ts or not user or not reaction:
        return None

    return ReactionEvent(
        message_id=ts,
        reactor_id=user,
        reaction=reaction,
        channel=item.get("channel", ""),
    )
