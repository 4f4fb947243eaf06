"""
Notifier interface.

The messaging platform posts approval prompts, resolves user ids to display
names, and authenticates inbound event deliveries.
"""

from abc import ABC, abstractmethod
from typing import Mapping


class NotifierError(Exception):
    """A call to the messaging platform failed."""


class Notifier(ABC):
    """Outbound and inbound messaging contract."""

    @abstractmethod
    async def post_message(self, channel: str, text: str) -> str:
        """Post text to a channel and return the message id."""

    @abstractmethod
    async def resolve_display_name(self, user_id: str) -> str:
        """Best-effort display name; falls back to the raw id."""

    @abstractmethod
    def verify_request(self, body: bytes, headers: Mapping[str, str]) -> bool:
        """Check an inbound event delivery's signature."""
