"""
Slack event delivery endpoint.

Reactions on tracked prompts become replies for the correlation engine.
Reactions on anything else are dropped by the engine.
"""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import PlainTextResponse

from ..core.reactions import parse_reaction_added
from ..service.notifier import Notifier, NotifierError
from .common import read_body, require_engine

logger = logging.getLogger("reactgate.api.events")
router = APIRouter()

MENTION_REPLY = "Yes, hello."


async def _greet(notifier: Notifier, channel: str) -> None:
    try:
        await notifier.post_message(channel, MENTION_REPLY)
    except NotifierError as e:
        logger.error(f"post: {e}")


@router.post("/events-endpoint")
async def post_event(request: Request, background_tasks: BackgroundTasks):
    """Receive an Events API delivery."""
    body = await read_body(request)
    state = request.app.state

    if not state.notifier.verify_request(body, request.headers):
        logger.warning("Rejected event with bad signature")
        raise HTTPException(status_code=401, detail="invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="unparseable event")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="unparseable event")

    event_type = payload.get("type")
    if event_type == "url_verification":
        return PlainTextResponse(str(payload.get("challenge", "")))

    if event_type != "event_callback":
        logger.debug(f"Ignoring event type: {event_type}")
        return {"ok": True}

    event = payload.get("event") or {}
    inner_type = event.get("type")

    if inner_type == "reaction_added":
        reaction = parse_reaction_added(event)
        if reaction is not None:
            require_engine(request)
            reply = state.classifier.translate(reaction)
            logger.info(
                f"reaction {reaction.reaction} on {reaction.message_id} "
                f"by {reaction.reactor_id} (approved={reply.approved})"
            )
            state.engine.submit_reply(reply)

    elif inner_type == "reaction_removed":
        # Votes cannot be retracted
        logger.debug(f"Ignoring reaction removal on {event.get('item', {}).get('ts')}")

    elif inner_type == "app_mention":
        channel = event.get("channel")
        if channel:
            background_tasks.add_task(_greet, state.notifier, channel)

    return {"ok": True}
