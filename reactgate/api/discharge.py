"""
Third-party discharge endpoints.

POST /.well-known/macfly/3p               start a round, answer with a poll URL
GET  /.well-known/macfly/3p/poll/{secret} poll the round's outcome
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..core.tickets import TicketError
from ..service.discharge import PollState, UnknownPollError
from ..service.requests import PromptPostError
from .common import parse_body, read_body, require_engine

logger = logging.getLogger("reactgate.api.discharge")
router = APIRouter()

INIT_PATH = "/.well-known/macfly/3p"
POLL_PATH_PREFIX = INIT_PATH + "/poll/"


class DischargeInitRequest(BaseModel):
    ticket: str


@router.post(INIT_PATH, status_code=201)
async def discharge_init(request: Request):
    """Post a prompt and hand the first party a poll URL."""
    body = parse_body(DischargeInitRequest, await read_body(request))
    state = request.app.state

    try:
        ticket = state.codec.open_ticket(body.ticket)
    except TicketError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if ticket.caveats:
        raise HTTPException(status_code=400, detail="unsupported caveats in 3p caveat")
    require_engine(request)

    try:
        secret = await state.requester.request_discharge(ticket)
    except PromptPostError as e:
        raise HTTPException(status_code=502, detail=f"could not post prompt: {e}")

    return {"poll_url": str(request.url_for("discharge_poll", secret=secret))}


@router.get(POLL_PATH_PREFIX + "{secret}", name="discharge_poll")
async def discharge_poll(secret: str, request: Request):
    """Report a round's outcome; pending rounds answer 202."""
    try:
        record = await request.app.state.authority.poll(secret)
    except UnknownPollError:
        raise HTTPException(status_code=404, detail="unknown poll secret")

    if record.state == PollState.PENDING:
        return JSONResponse(status_code=202, content=record.to_dict())
    return record.to_dict()
