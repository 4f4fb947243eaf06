"""
Tests for the in-memory discharge authority.
"""

import pytest

from reactgate.service.discharge import (
    InMemoryDischargeAuthority,
    PollState,
    UnknownPollError,
)


@pytest.fixture
def local_authority(codec):
    return InMemoryDischargeAuthority(codec, capacity=3)


@pytest.fixture
def ticket(codec):
    return codec.open_ticket(codec.seal_ticket())


class TestInMemoryDischargeAuthority:
    """Poll rounds: issue, finish, collect once."""

    @pytest.mark.asyncio
    async def test_pending_round(self, local_authority, codec):
        secret = await local_authority.issue_poll(codec.open_ticket(codec.seal_ticket()))

        record = await local_authority.poll(secret)
        assert record.state == PollState.PENDING
        # still there
        assert (await local_authority.poll(secret)).state == PollState.PENDING

    @pytest.mark.asyncio
    async def test_discharge_collected_once(self, local_authority, codec):
        ticket = codec.open_ticket(codec.seal_ticket())
        secret = await local_authority.issue_poll(ticket)

        await local_authority.discharge(secret)
        record = await local_authority.poll(secret)

        assert record.state == PollState.DISCHARGED
        assert codec.verify_discharge(record.discharge).ticket_id == ticket.ticket_id
        assert record.to_dict() == {"state": "discharged", "discharge": record.discharge}
        with pytest.raises(UnknownPollError):
            await local_authority.poll(secret)

    @pytest.mark.asyncio
    async def test_abort_reports_reason(self, local_authority, ticket):
        secret = await local_authority.issue_poll(ticket)

        await local_authority.abort(secret, "rejected by @bob")
        record = await local_authority.poll(secret)

        assert record.to_dict() == {"state": "aborted", "error": "rejected by @bob"}

    @pytest.mark.asyncio
    async def test_cannot_finish_twice(self, local_authority, ticket):
        secret = await local_authority.issue_poll(ticket)
        await local_authority.abort(secret, "timeout")

        with pytest.raises(ValueError):
            await local_authority.abort(secret, "timeout")

    @pytest.mark.asyncio
    async def test_unknown_secret(self, local_authority):
        with pytest.raises(UnknownPollError):
            await local_authority.discharge("never-issued")
        with pytest.raises(UnknownPollError):
            await local_authority.poll("never-issued")

    @pytest.mark.asyncio
    async def test_capacity_evicts_oldest(self, local_authority, ticket):
        secrets = [await local_authority.issue_poll(ticket) for _ in range(4)]

        with pytest.raises(UnknownPollError):
            await local_authority.poll(secrets[0])
        for secret in secrets[1:]:
            assert (await local_authority.poll(secret)).state == PollState.PENDING
        assert local_authority.get_stats()["evicted"] == 1

    @pytest.mark.asyncio
    async def test_round_without_ticket_refused(self, local_authority):
        with pytest.raises(ValueError):
            await local_authority.issue_poll(None)
        assert local_authority.get_stats()["issued"] == 0
