"""
Synchronous approval endpoint.

POST /ticket blocks until someone reacts to the posted prompt, the request
expires, or the client goes away.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from ..core.tickets import TicketError
from ..service.requests import PromptPostError, RequestCancelled, RequestTimedOut
from .common import parse_body, read_body, require_engine

logger = logging.getLogger("reactgate.api.tickets")
router = APIRouter()

DISCONNECT_POLL_SECONDS = 1.0


class TicketRequest(BaseModel):
    """Ticket presented by the party asking for approval."""

    name: str
    ticket: str


class TicketReply(BaseModel):
    """Outcome of the approval round."""

    respondent: str
    approved: bool
    discharge: Optional[str] = None


async def _watch_disconnect(request: Request, cancel: asyncio.Event) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)
    cancel.set()


@router.post("/ticket", response_model=TicketReply)
async def post_ticket(request: Request):
    """
    Ask the channel to approve a ticket and wait for the answer.

    The discharge is minted before the prompt goes out and only returned
    when the answer is an approval.
    """
    logger.info(f"incoming remote={request.client.host if request.client else '-'}")

    body = parse_body(TicketRequest, await read_body(request))
    codec = request.app.state.codec
    requester = request.app.state.requester

    try:
        caveats, discharge = codec.discharge_ticket(body.ticket)
    except TicketError as e:
        logger.warning(f"decode ticket: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    if caveats:
        raise HTTPException(status_code=400, detail="unsupported caveats in 3p caveat")
    require_engine(request)

    cancel = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel))
    try:
        resolution = await requester.request_approval(body.name, cancel=cancel)
    except PromptPostError as e:
        raise HTTPException(status_code=502, detail=f"could not post prompt: {e}")
    except RequestTimedOut:
        return PlainTextResponse("timed out without response", status_code=504)
    except RequestCancelled as e:
        return PlainTextResponse(f"request {e.reason}", status_code=409)
    finally:
        watcher.cancel()

    return TicketReply(
        respondent=resolution.approver_name or resolution.approver or "",
        approved=resolution.approved,
        discharge=discharge if resolution.approved else None,
    )
