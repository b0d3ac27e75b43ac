"""Tests for the step dispatcher."""

import asyncio

import pytest

from waypoint.core.errors import DispatchUnsupported
from waypoint.handlers.base import StepHandler, StepOutcome
from waypoint.handlers.registry import UNSUPPORTED_STEP_TYPE, StepDispatcher
from waypoint.planner.models import Step


class EchoHandler(StepHandler):
    def __init__(self, behavior=None):
        self.calls = []
        self._behavior = behavior

    @property
    def step_type(self):
        return "echo"

    @property
    def aliases(self):
        return ("say",)

    async def handle(self, params, work_dir, task_id, timeout):
        self.calls.append((dict(params), work_dir, task_id, timeout))
        if self._behavior is not None:
            return await self._behavior()
        return StepOutcome.ok()


def _step(type="echo", timeout=5.0, **params):
    return Step(step_id="s0", type=type, description="", params=params, timeout_s=timeout)


class TestRegistry:
    def test_register_and_resolve(self):
        handler = EchoHandler()
        dispatcher = StepDispatcher([handler])
        assert dispatcher.resolve("echo") is handler
        assert dispatcher.resolve("say") is handler
        assert dispatcher.resolve("missing") is None
        assert dispatcher.step_types == ["echo", "say"]

    def test_duplicate_registration(self):
        dispatcher = StepDispatcher([EchoHandler()])
        with pytest.raises(ValueError, match="already registered"):
            dispatcher.register(EchoHandler())

    def test_replace(self):
        dispatcher = StepDispatcher([EchoHandler()])
        replacement = EchoHandler()
        dispatcher.register(replacement, replace=True)
        assert dispatcher.resolve("echo") is replacement

    def test_require_unknown(self):
        with pytest.raises(DispatchUnsupported):
            StepDispatcher().require("teleport")

    def test_unregister(self):
        dispatcher = StepDispatcher([EchoHandler()])
        assert dispatcher.unregister("echo") is True
        assert dispatcher.unregister("echo") is False
        assert dispatcher.resolve("say") is not None


class TestDispatch:
    async def test_routes_params(self, tmp_path):
        handler = EchoHandler()
        outcome = await StepDispatcher([handler]).dispatch(_step(msg="hi"), tmp_path / "w", "t1")
        assert outcome.success
        params, work_dir, task_id, timeout = handler.calls[0]
        assert params == {"msg": "hi"}
        assert work_dir == tmp_path / "w"
        assert work_dir.is_dir()
        assert task_id == "t1"
        assert timeout == 5.0

    async def test_unsupported_type(self, tmp_path):
        outcome = await StepDispatcher().dispatch(_step(type="teleport"), tmp_path, "t1")
        assert outcome.success is False
        assert outcome.failure_reason == UNSUPPORTED_STEP_TYPE

    async def test_handler_exception_becomes_failure(self, tmp_path):
        async def boom():
            raise RuntimeError("kaput")

        outcome = await StepDispatcher([EchoHandler(boom)]).dispatch(_step(), tmp_path, "t1")
        assert outcome.success is False
        assert outcome.failure_reason == "RuntimeError: kaput"

    async def test_timeout(self, tmp_path):
        async def slow():
            await asyncio.sleep(5)
            return StepOutcome.ok()

        outcome = await StepDispatcher([EchoHandler(slow)]).dispatch(
            _step(timeout=0.05), tmp_path, "t1"
        )
        assert outcome.success is False
        assert outcome.failure_reason == "timed out after 0.05s"

    async def test_non_outcome_result(self, tmp_path):
        async def wrong():
            return "done"

        outcome = await StepDispatcher([EchoHandler(wrong)]).dispatch(_step(), tmp_path, "t1")
        assert outcome.success is False

    async def test_cancellation_propagates(self, tmp_path):
        async def slow():
            await asyncio.sleep(5)
            return StepOutcome.ok()

        task = asyncio.create_task(StepDispatcher([EchoHandler(slow)]).dispatch(_step(), tmp_path, "t1"))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
