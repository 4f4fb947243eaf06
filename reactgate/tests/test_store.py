"""
Tests for the correlation store and pending request model.
"""

import asyncio

import pytest

from reactgate.service.correlation import (
    CorrelationMode,
    CorrelationStore,
    PendingRequest,
)


def polled(token, secret="sek", created_at=None):
    request = PendingRequest.polled(token, secret)
    request.created_at = created_at
    return request


class TestCorrelationStore:
    """Insert/lookup/remove/sweep semantics."""

    @pytest.fixture
    def store(self):
        return CorrelationStore()

    def test_insert_and_lookup(self, store):
        request = polled("t1")
        assert store.insert(request) is None
        assert store.lookup("t1") is request
        assert "t1" in store
        assert len(store) == 1

    def test_lookup_missing(self, store):
        assert store.lookup("nope") is None

    def test_insert_overwrites_and_returns_previous(self, store):
        first = polled("t1", "a")
        second = polled("t1", "b")
        store.insert(first)

        assert store.insert(second) is first
        assert store.lookup("t1") is second
        assert len(store) == 1

    def test_remove(self, store):
        request = polled("t1")
        store.insert(request)

        assert store.remove("t1") is request
        assert store.remove("t1") is None
        assert len(store) == 0

    def test_sweep_removes_matches_only(self, store):
        for i, created in enumerate([0.0, 50.0, 100.0, 150.0]):
            store.insert(polled(f"t{i}", created_at=created))

        swept = store.sweep(lambda r: r.created_at < 100.0)

        assert sorted(r.token for r in swept) == ["t0", "t1"]
        assert sorted(r.token for r in store) == ["t2", "t3"]

    def test_sweep_nothing(self, store):
        store.insert(polled("t1", created_at=1.0))
        assert store.sweep(lambda r: False) == []
        assert len(store) == 1


class TestPendingRequest:
    """Mode-specific construction rules."""

    def test_synchronous_needs_waiter(self):
        with pytest.raises(ValueError):
            PendingRequest(token="t", mode=CorrelationMode.SYNCHRONOUS)

    def test_polled_needs_secret(self):
        with pytest.raises(ValueError):
            PendingRequest(token="t", mode=CorrelationMode.POLLED)

    def test_empty_token_rejected(self):
        with pytest.raises(ValueError):
            PendingRequest.polled("", "sek")

    @pytest.mark.asyncio
    async def test_summary_hides_secrets(self):
        waiter = asyncio.get_running_loop().create_future()
        request = PendingRequest.synchronous("t1", waiter, requester="alice")
        request.created_at = 10.0

        summary = request.to_dict(now=12.5)

        assert summary == {
            "token": "t1",
            "mode": "synchronous",
            "requester": "alice",
            "age_seconds": 2.5,
        }
        assert "poll_secret" not in polled("t2", "hunter2").to_dict()
