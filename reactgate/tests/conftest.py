"""
Shared fixtures: fake Slack, recording Discharge Authority, manual clock.
"""

import hashlib
import hmac
import itertools
import time
from typing import Dict, List, Mapping, Optional, Tuple

import pytest
import pytest_asyncio
from slack_sdk.signature import SignatureVerifier

from reactgate.config.settings import BotConfig
from reactgate.core.tickets import TicketCodec
from reactgate.service.correlation import CorrelationEngine
from reactgate.service.discharge import (
    DischargeAuthority,
    PollRecord,
    UnknownPollError,
)
from reactgate.service.notifier import Notifier, NotifierError

SIGNING_SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
MACAROON_SECRET = bytes(range(32))
LOCATION = "https://reactgate.test/ticket"
CHANNEL = "C0TESTCHAN"
DEADLINE = 120.0


class FakeNotifier(Notifier):
    """Records posted prompts; message ids are sequential Slack-style ts values."""

    def __init__(self, names: Optional[Dict[str, str]] = None, fail_post: bool = False):
        self.posted: List[Tuple[str, str, str]] = []
        self.names = names or {}
        self.fail_post = fail_post
        self.lookups: List[str] = []
        self._counter = itertools.count(1)
        self._verifier = SignatureVerifier(SIGNING_SECRET)

    async def post_message(self, channel: str, text: str) -> str:
        if self.fail_post:
            raise NotifierError("channel_not_found")
        ts = f"1700000000.{next(self._counter):06d}"
        self.posted.append((channel, text, ts))
        return ts

    async def resolve_display_name(self, user_id: str) -> str:
        self.lookups.append(user_id)
        return self.names.get(user_id, user_id)

    def verify_request(self, body: bytes, headers: Mapping[str, str]) -> bool:
        return self._verifier.is_valid_request(body, dict(headers))

    @property
    def last_ts(self) -> str:
        return self.posted[-1][2]


class RecordingAuthority(DischargeAuthority):
    """Discharge Authority that only records what the engine asks of it."""

    def __init__(self, fail: bool = False):
        self.calls: List[Tuple[str, ...]] = []
        self.fail = fail
        self._counter = itertools.count(1)

    async def issue_poll(self, ticket) -> str:
        return f"sek{next(self._counter)}"

    async def discharge(self, poll_secret: str) -> None:
        self.calls.append(("discharge", poll_secret))
        if self.fail:
            raise ConnectionError("authority unreachable")

    async def abort(self, poll_secret: str, reason: str) -> None:
        self.calls.append(("abort", poll_secret, reason))
        if self.fail:
            raise ConnectionError("authority unreachable")

    async def poll(self, poll_secret: str) -> PollRecord:
        raise UnknownPollError(poll_secret)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def signed_headers(body: bytes, secret: str = SIGNING_SECRET) -> Dict[str, str]:
    """Slack v0 request signature headers for a body."""
    timestamp = str(int(time.time()))
    base = f"v0:{timestamp}:{body.decode()}".encode()
    signature = "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
    return {
        "X-Slack-Request-Timestamp": timestamp,
        "X-Slack-Signature": signature,
        "Content-Type": "application/json",
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def authority():
    return RecordingAuthority()


@pytest.fixture
def notifier():
    return FakeNotifier(names={"U0ALICE": "alice", "U0BOB": "bob"})


@pytest.fixture
def codec():
    return TicketCodec(MACAROON_SECRET, LOCATION)


@pytest.fixture
def config():
    return BotConfig(
        macaroon_secret=MACAROON_SECRET,
        signing_secret=SIGNING_SECRET,
        bot_token="xoxb-test",
        channel=CHANNEL,
        location=LOCATION,
        deadline_seconds=DEADLINE,
        sweep_interval_seconds=3600,
    )


@pytest_asyncio.fixture
async def engine(authority, clock):
    # Long sweep interval: tests drive sweeps explicitly
    engine = CorrelationEngine(
        authority, deadline=DEADLINE, sweep_interval=3600, clock=clock
    )
    await engine.start()
    yield engine
    await engine.stop()
