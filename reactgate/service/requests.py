"""
Approval request façade.

Two ways to ask the channel for approval:

- request_approval(): the caller waits for the outcome (HTTP /ticket)
- request_discharge(): the outcome goes to the Discharge Authority, which
  the first party polls on its own (third-party caveat flow)

Both post the prompt first; the posted message id is the correlation token.
A failed post registers nothing.
"""

import asyncio
import logging
from typing import Optional

from ..core.tickets import Ticket
from .correlation import CorrelationEngine, Outcome, PendingRequest, Resolution
from .discharge import DischargeAuthority
from .notifier import Notifier, NotifierError

logger = logging.getLogger("reactgate.requests")

SYNC_PROMPT = ":interrobang: @{name} would like to deploy. :+1: or :-1:?"
POLLED_PROMPT = ":interrobang: attempting to deploy. :+1: or :-1:?"


class PromptPostError(Exception):
    """The approval prompt could not be posted."""


class RequestTimedOut(Exception):
    """Nobody answered before the deadline."""

    def __init__(self, token: str):
        super().__init__(f"request {token} timed out without response")
        self.token = token


class RequestCancelled(Exception):
    """The caller gave up, or the request was superseded."""

    def __init__(self, token: str, reason: str = "cancelled"):
        super().__init__(f"request {token} {reason}")
        self.token = token
        self.reason = reason


class ApprovalRequester:
    """Creates pending requests and consumes their outcomes."""

    def __init__(
        self,
        engine: CorrelationEngine,
        notifier: Notifier,
        authority: DischargeAuthority,
        channel: str,
    ):
        self.engine = engine
        self.notifier = notifier
        self.authority = authority
        self.channel = channel

    async def _post_prompt(self, text: str) -> str:
        try:
            return await self.notifier.post_message(self.channel, text)
        except NotifierError as e:
            logger.error(f"post: {e}")
            raise PromptPostError(str(e)) from e

    async def request_approval(
        self, name: str, cancel: Optional[asyncio.Event] = None
    ) -> Resolution:
        """
        Ask for approval and wait for the answer.

        Args:
            name: Who is asking (shown in the prompt)
            cancel: Set when the caller goes away

        Returns:
            Resolution with outcome APPROVED or REJECTED and the approver's
            display name filled in.

        Raises:
            PromptPostError: the prompt could not be posted
            RequestTimedOut: the expiry sweep resolved the request
            RequestCancelled: the caller cancelled, or the token was reused
        """
        token = await self._post_prompt(SYNC_PROMPT.format(name=name))

        waiter: "asyncio.Future[Resolution]" = asyncio.get_running_loop().create_future()
        self.engine.register(PendingRequest.synchronous(token, waiter, requester=name))

        try:
            resolution = await self._wait(token, waiter, cancel)
        except asyncio.CancelledError:
            if self.engine.is_running:
                self.engine.cancel(token)
            raise

        if resolution.outcome == Outcome.EXPIRED:
            raise RequestTimedOut(token)
        if resolution.outcome == Outcome.CANCELLED:
            raise RequestCancelled(token, "superseded")

        resolution.approver_name = resolution.approver
        if resolution.approver:
            resolution.approver_name = await self._display_name(resolution.approver)
        return resolution

    async def _wait(
        self,
        token: str,
        waiter: "asyncio.Future[Resolution]",
        cancel: Optional[asyncio.Event],
    ) -> Resolution:
        if cancel is None:
            return await waiter

        cancelled = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({waiter, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()

        if waiter.done():
            return waiter.result()

        if self.engine.is_running:
            self.engine.cancel(token)
        logger.info(f"Caller gave up on {token}")
        raise RequestCancelled(token)

    async def _display_name(self, user_id: str) -> str:
        try:
            return await self.notifier.resolve_display_name(user_id)
        except Exception as e:
            logger.warning(f"Display name lookup failed for {user_id}: {e}")
            return user_id

    async def request_discharge(self, ticket: Ticket) -> str:
        """
        Ask for approval on behalf of a polling first party.

        Args:
            ticket: Opened ticket the discharge will be bound to

        Returns:
            The poll secret the first party uses to collect the outcome.
        """
        token = await self._post_prompt(POLLED_PROMPT)
        poll_secret = await self.authority.issue_poll(ticket)
        self.engine.register(PendingRequest.polled(token, poll_secret))
        return poll_secret
