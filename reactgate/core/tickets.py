"""
Third-Party Tickets and Discharge Tokens

A ticket is what a first-party service hands us alongside a third-party
caveat: it names this location, carries the caveats we are asked to check,
and is sealed with the shared macaroon secret. Once a human approves, we
answer with a discharge token bound to the ticket.

Wire format (both tokens):
    base64url(canonical JSON payload) "." hex(HMAC-SHA256(secret, payload))
"""

import base64
import binascii
import hashlib
import hmac
import json
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

DISCHARGE_VALIDITY_SECONDS = 300


class TicketError(Exception):
    """Malformed, forged, or misdirected ticket."""


@dataclass
class Ticket:
    """Opened third-party ticket."""

    ticket_id: str
    location: str
    issued_at: str
    caveats: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Discharge:
    """Discharge token proving the third-party caveat was satisfied."""

    ticket_id: str
    location: str
    issued_at: str
    expires_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


class TicketCodec:
    """Seals and opens tickets and discharges for one location."""

    def __init__(
        self,
        secret: bytes,
        location: str,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.secret = secret
        self.location = location
        self._clock = clock

    def _sign(self, payload: bytes) -> str:
        return hmac.new(self.secret, payload, hashlib.sha256).hexdigest()

    def _seal(self, data: Dict[str, Any]) -> str:
        payload = json.dumps(data, sort_keys=True, separators=(",", ":")).encode()
        return f"{_b64encode(payload)}.{self._sign(payload)}"

    def _unseal(self, token: str, kind: str) -> Dict[str, Any]:
        body, sep, signature = token.strip().partition(".")
        if not sep or not body or not signature:
            raise TicketError(f"malformed {kind}")
        try:
            payload = _b64decode(body)
        except (binascii.Error, ValueError) as e:
            raise TicketError(f"malformed {kind}: {e}") from e

        if not hmac.compare_digest(self._sign(payload), signature):
            raise TicketError(f"bad {kind} signature")

        try:
            data = json.loads(payload)
        except ValueError as e:
            raise TicketError(f"malformed {kind} payload: {e}") from e
        if not isinstance(data, dict) or data.get("kind") != kind:
            raise TicketError(f"not a {kind}")
        if data.get("location") != self.location:
            raise TicketError(f"{kind} is for {data.get('location')!r}")
        return data

    def seal_ticket(self, caveats: Optional[List[Dict[str, Any]]] = None) -> str:
        """Mint a ticket addressed to this location."""
        ticket = Ticket(
            ticket_id=str(uuid.uuid4()),
            location=self.location,
            issued_at=self._clock().isoformat() + "Z",
            caveats=list(caveats or []),
        )
        return self._seal({"kind": "ticket", **ticket.to_dict()})

    def open_ticket(self, token: str) -> Ticket:
        """Verify and decode a ticket."""
        data = self._unseal(token, "ticket")
        try:
            return Ticket(
                ticket_id=data["ticket_id"],
                location=data["location"],
                issued_at=data["issued_at"],
                caveats=list(data.get("caveats") or []),
            )
        except KeyError as e:
            raise TicketError(f"ticket missing {e}") from e

    def mint_discharge(self, ticket: Ticket) -> str:
        """Mint a discharge bound to an opened ticket."""
        now = self._clock()
        discharge = Discharge(
            ticket_id=ticket.ticket_id,
            location=self.location,
            issued_at=now.isoformat() + "Z",
            expires_at=(now + timedelta(seconds=DISCHARGE_VALIDITY_SECONDS)).isoformat()
            + "Z",
        )
        return self._seal({"kind": "discharge", **discharge.to_dict()})

    def discharge_ticket(self, token: str) -> Tuple[List[Dict[str, Any]], str]:
        """
        Open a ticket and mint its discharge.

        Returns:
            (caveats, discharge) tuple; the caller decides whether it can
            satisfy the caveats before handing out the discharge.
        """
        ticket = self.open_ticket(token)
        return ticket.caveats, self.mint_discharge(ticket)

    def verify_discharge(self, token: str) -> Discharge:
        """Verify a discharge token (signature, location, expiry)."""
        data = self._unseal(token, "discharge")
        try:
            discharge = Discharge(
                ticket_id=data["ticket_id"],
                location=data["location"],
                issued_at=data["issued_at"],
                expires_at=data["expires_at"],
            )
        except KeyError as e:
            raise TicketError(f"discharge missing {e}") from e

        try:
            expires_at = datetime.fromisoformat(str(discharge.expires_at).rstrip("Z"))
        except ValueError as e:
            raise TicketError(f"malformed discharge expiry: {e}") from e
        if self._clock() > expires_at:
            raise TicketError("discharge expired")
        return discharge
