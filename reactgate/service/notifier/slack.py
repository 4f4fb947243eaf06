"""
Slack Notifier.

Posts prompts with the Web API and checks the signing secret on event
deliveries. Message ids are Slack message timestamps ("ts").
"""

import asyncio
import logging
from typing import Mapping, Optional

import aiohttp
from slack_sdk.errors import SlackApiError
from slack_sdk.signature import SignatureVerifier
from slack_sdk.web.async_client import AsyncWebClient

from .base import Notifier, NotifierError

logger = logging.getLogger("reactgate.notifier.slack")


class SlackNotifier(Notifier):
    """Notifier backed by a Slack bot token and signing secret."""

    def __init__(
        self,
        bot_token: str,
        signing_secret: str,
        client: Optional[AsyncWebClient] = None,
    ):
        self._client = client or AsyncWebClient(token=bot_token)
        self._verifier = SignatureVerifier(signing_secret)
        if not signing_secret:
            logger.warning("No Slack signing secret configured; all events will be rejected")
        self._signing_secret = signing_secret

    async def post_message(self, channel: str, text: str) -> str:
        try:
            response = await self._client.chat_postMessage(channel=channel, text=text)
        except (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NotifierError(f"post to {channel}: {e}") from e

        ts = response.get("ts")
        if not ts:
            raise NotifierError(f"post to {channel}: no message ts in response")
        logger.info(f"Posted message ch={response.get('channel', channel)} ts={ts}")
        return ts

    async def resolve_display_name(self, user_id: str) -> str:
        try:
            response = await self._client.users_info(user=user_id)
        except (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"User lookup failed for {user_id}: {e}")
            return user_id

        user = response.get("user") or {}
        return user.get("name") or user_id

    def verify_request(self, body: bytes, headers: Mapping[str, str]) -> bool:
        if not self._signing_secret:
            return False
        return self._verifier.is_valid_request(body, dict(headers))
