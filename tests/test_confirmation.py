"""Tests for the confirmation gateway."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from waypoint.core.confirmation import ConfirmationGateway


@pytest.fixture
def notifier():
    return AsyncMock()


@pytest.fixture
def gateway(notifier):
    return ConfirmationGateway(notifier, timeout=5)


async def _wait_pending(gateway, count=1):
    for _ in range(100):
        if len(gateway.pending()) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("confirmation request never registered")


class TestConfirmationGateway:
    async def test_approve(self, gateway, notifier):
        waiter = asyncio.create_task(gateway.request("t1", "s1", "Delete files?"))
        await _wait_pending(gateway)
        assert gateway.decide("t1", "s1", True) is True
        assert await waiter is True
        notifier.request_decision.assert_awaited_once_with("t1", "s1", "Delete files?")

    async def test_deny(self, gateway):
        waiter = asyncio.create_task(gateway.request("t1", "s1", "msg"))
        await _wait_pending(gateway)
        gateway.decide("t1", "s1", False)
        assert await waiter is False

    async def test_timeout_is_denial(self, gateway):
        assert await gateway.request("t1", "s1", "msg", timeout=0.05) is False
        assert gateway.pending() == []

    async def test_late_decision_is_discarded(self, gateway):
        assert await gateway.request("t1", "s1", "msg", timeout=0.05) is False
        assert gateway.decide("t1", "s1", True) is False

    async def test_second_decision_is_noop(self, gateway):
        waiter = asyncio.create_task(gateway.request("t1", "s1", "msg"))
        await _wait_pending(gateway)
        assert gateway.decide("t1", "s1", False) is True
        assert gateway.decide("t1", "s1", True) is False
        assert await waiter is False

    async def test_unknown_decision(self, gateway):
        assert gateway.decide("nope", "s1", True) is False

    async def test_decision_without_step_id(self, gateway):
        waiter = asyncio.create_task(gateway.request("t1", "s1", "msg"))
        await _wait_pending(gateway)
        assert gateway.decide("t1", None, True) is True
        assert await waiter is True

    async def test_decisions_are_keyed_per_task(self, gateway):
        w1 = asyncio.create_task(gateway.request("t1", "s1", "msg"))
        w2 = asyncio.create_task(gateway.request("t2", "s1", "msg"))
        await _wait_pending(gateway, count=2)
        gateway.decide("t2", "s1", True)
        gateway.decide("t1", "s1", False)
        assert await w1 is False
        assert await w2 is True

    async def test_channel_failure_is_denial(self, gateway, notifier):
        notifier.request_decision.side_effect = ConnectionError("offline")
        assert await gateway.request("t1", "s1", "msg") is False
        assert gateway.pending() == []

    async def test_fast_reply_during_prompt_is_not_lost(self, notifier):
        gateway = ConfirmationGateway(notifier, timeout=5)

        async def reply_immediately(task_id, step_id, message):
            gateway.decide(task_id, step_id, True)

        notifier.request_decision.side_effect = reply_immediately
        assert await gateway.request("t1", "s1", "msg") is True

    async def test_cancel_releases_listener(self, gateway):
        waiter = asyncio.create_task(gateway.request("t1", "s1", "msg"))
        await _wait_pending(gateway)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert gateway.pending() == []
        assert gateway.decide("t1", "s1", True) is False

    async def test_pending_lists_requests(self, gateway):
        waiter = asyncio.create_task(gateway.request("t1", "s1", "Approve?"))
        await _wait_pending(gateway)
        [request] = gateway.pending()
        data = request.to_dict()
        assert data["task_id"] == "t1"
        assert data["step_id"] == "s1"
        assert data["message"] == "Approve?"
        assert data["expires_at"] > data["created_at"]
        gateway.decide("t1", "s1", True)
        await waiter
