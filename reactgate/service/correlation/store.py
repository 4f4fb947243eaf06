"""
Correlation Store.

Maps a correlation token (the posted prompt's message id) to the request
waiting on it. Owned by the CorrelationEngine; nothing else touches it.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional

logger = logging.getLogger("reactgate.correlation.store")


class CorrelationMode(str, Enum):
    """Who consumes the outcome of a pending request."""

    SYNCHRONOUS = "synchronous"  # caller blocked on a waiter future
    POLLED = "polled"  # outcome reported to the Discharge Authority


class Outcome(str, Enum):
    """Terminal outcome of a pending request."""

    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass
class Resolution:
    """What a synchronous caller receives when its request is resolved."""

    token: str
    outcome: Outcome
    approver: Optional[str] = None
    approver_name: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.outcome == Outcome.APPROVED


@dataclass
class PendingRequest:
    """An outstanding human-approval round."""

    token: str
    mode: CorrelationMode
    waiter: Optional["asyncio.Future[Resolution]"] = None
    poll_secret: Optional[str] = None
    requester: str = ""
    created_at: Optional[float] = None  # stamped by the engine on register

    def __post_init__(self):
        if not self.token:
            raise ValueError("correlation token must not be empty")
        if self.mode == CorrelationMode.SYNCHRONOUS and self.waiter is None:
            raise ValueError("synchronous request needs a waiter")
        if self.mode == CorrelationMode.POLLED and not self.poll_secret:
            raise ValueError("polled request needs a poll secret")

    @classmethod
    def synchronous(
        cls, token: str, waiter: "asyncio.Future[Resolution]", requester: str = ""
    ) -> "PendingRequest":
        return cls(
            token=token,
            mode=CorrelationMode.SYNCHRONOUS,
            waiter=waiter,
            requester=requester,
        )

    @classmethod
    def polled(
        cls, token: str, poll_secret: str, requester: str = ""
    ) -> "PendingRequest":
        return cls(
            token=token,
            mode=CorrelationMode.POLLED,
            poll_secret=poll_secret,
            requester=requester,
        )

    def to_dict(self, now: Optional[float] = None) -> Dict[str, object]:
        """Summary safe to expose (no waiter, no poll secret)."""
        age = None
        if now is not None and self.created_at is not None:
            age = round(now - self.created_at, 3)
        return {
            "token": self.token,
            "mode": self.mode.value,
            "requester": self.requester,
            "age_seconds": age,
        }


class CorrelationStore:
    """Token -> PendingRequest mapping; keys are unique."""

    def __init__(self):
        self._entries: Dict[str, PendingRequest] = {}

    def insert(self, request: PendingRequest) -> Optional[PendingRequest]:
        """Insert, overwriting any entry with the same token; returns the old one."""
        previous = self._entries.get(request.token)
        self._entries[request.token] = request
        return previous

    def lookup(self, token: str) -> Optional[PendingRequest]:
        return self._entries.get(token)

    def remove(self, token: str) -> Optional[PendingRequest]:
        return self._entries.pop(token, None)

    def sweep(self, predicate: Callable[[PendingRequest], bool]) -> List[PendingRequest]:
        """Remove and return every entry matching the predicate."""
        matched = [r for r in self._entries.values() if predicate(r)]
        for request in matched:
            del self._entries[request.token]
        return matched

    def __iter__(self) -> Iterator[PendingRequest]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, token: object) -> bool:
        return token in self._entries
