"""
Discharge Authority - third-party caveat poll protocol.

A poll round starts when a first party presents a ticket: we issue an opaque
poll secret and the first party polls with it until the round is discharged
(approved) or aborted (rejected, timed out). The correlation engine only
ever calls discharge()/abort(); issue_poll() precedes registration.

InMemoryDischargeAuthority keeps rounds in a bounded, insertion-ordered map;
nothing survives a restart.
"""

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ...core.tickets import Ticket, TicketCodec

logger = logging.getLogger("reactgate.discharge")


class UnknownPollError(KeyError):
    """Poll secret was never issued, was evicted, or was already consumed."""


class PollState(str, Enum):
    """State of one discharge round."""

    PENDING = "pending"
    DISCHARGED = "discharged"
    ABORTED = "aborted"


@dataclass
class PollRecord:
    """One outstanding or finished discharge round."""

    secret: str
    state: PollState
    created_at: str
    ticket: Ticket
    discharge: Optional[str] = None
    reason: Optional[str] = None
    resolved_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"state": self.state.value}
        if self.state == PollState.DISCHARGED:
            d["discharge"] = self.discharge
        elif self.state == PollState.ABORTED:
            d["error"] = self.reason
        return d


class DischargeAuthority(ABC):
    """Interface the correlation core needs from the discharge protocol."""

    @abstractmethod
    async def issue_poll(self, ticket: Ticket) -> str:
        """Start a round for an opened ticket and return its poll secret."""

    @abstractmethod
    async def discharge(self, poll_secret: str) -> None:
        """Finish the round successfully."""

    @abstractmethod
    async def abort(self, poll_secret: str, reason: str) -> None:
        """Finish the round with an error message for the first party."""

    @abstractmethod
    async def poll(self, poll_secret: str) -> PollRecord:
        """Current state of a round; raises UnknownPollError."""


class InMemoryDischargeAuthority(DischargeAuthority):
    """
    Local poll store.

    Features:
    - Bounded capacity, oldest round evicted first
    - Discharges minted by the shared TicketCodec
    - Terminal results handed out once
    """

    DEFAULT_CAPACITY = 1000

    def __init__(self, codec: TicketCodec, capacity: int = DEFAULT_CAPACITY):
        self._codec = codec
        self._capacity = capacity
        self._rounds: "OrderedDict[str, PollRecord]" = OrderedDict()
        self._lock = asyncio.Lock()

        self._stats = {
            "issued": 0,
            "discharged": 0,
            "aborted": 0,
            "evicted": 0,
        }

        logger.info(f"InMemoryDischargeAuthority initialized: capacity={capacity}")

    async def issue_poll(self, ticket: Ticket) -> str:
        if ticket is None:
            raise ValueError("a discharge round needs a ticket")
        secret = secrets.token_urlsafe(32)
        async with self._lock:
            while len(self._rounds) >= self._capacity:
                evicted, _ = self._rounds.popitem(last=False)
                self._stats["evicted"] += 1
                logger.warning(f"Poll store full, evicted round {evicted[:8]}...")

            self._rounds[secret] = PollRecord(
                secret=secret,
                state=PollState.PENDING,
                created_at=datetime.utcnow().isoformat() + "Z",
                ticket=ticket,
            )
            self._stats["issued"] += 1
        return secret

    async def discharge(self, poll_secret: str) -> None:
        async with self._lock:
            record = self._pending(poll_secret)
            record.discharge = self._codec.mint_discharge(record.ticket)
            record.state = PollState.DISCHARGED
            record.resolved_at = datetime.utcnow().isoformat() + "Z"
            self._stats["discharged"] += 1
        logger.info(f"Discharged round {poll_secret[:8]}...")

    async def abort(self, poll_secret: str, reason: str) -> None:
        async with self._lock:
            record = self._pending(poll_secret)
            record.reason = reason
            record.state = PollState.ABORTED
            record.resolved_at = datetime.utcnow().isoformat() + "Z"
            self._stats["aborted"] += 1
        logger.info(f"Aborted round {poll_secret[:8]}...: {reason}")

    async def poll(self, poll_secret: str) -> PollRecord:
        """
        Look up a round by secret.

        Pending rounds stay in the store; finished rounds are removed as they
        are returned.
        """
        async with self._lock:
            record = self._rounds.get(poll_secret)
            if record is None:
                raise UnknownPollError(poll_secret)
            if record.state != PollState.PENDING:
                del self._rounds[poll_secret]
            return record

    def _pending(self, poll_secret: str) -> PollRecord:
        record = self._rounds.get(poll_secret)
        if record is None:
            raise UnknownPollError(poll_secret)
        if record.state != PollState.PENDING:
            raise ValueError(f"round already {record.state.value}")
        return record

    def get_stats(self) -> Dict[str, Any]:
        return {**self._stats, "outstanding": len(self._rounds)}
