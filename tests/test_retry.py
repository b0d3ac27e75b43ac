"""Tests for the fixed-backoff retry policy."""

from unittest.mock import AsyncMock

import pytest

from waypoint.core.errors import StepFailure
from waypoint.core.retry import RetryPolicy
from waypoint.handlers.base import StepOutcome
from waypoint.planner.models import RetrySpec, Step


def _step(count=0, backoff=1.0):
    return Step(step_id="s0", type="noop", description="", retry=RetrySpec(count=count, backoff_s=backoff))


@pytest.fixture
def sleep():
    return AsyncMock()


class TestRetryPolicy:
    async def test_success_first_try(self, sleep):
        attempt = AsyncMock(return_value=StepOutcome.ok())
        outcome = await RetryPolicy(sleep=sleep).run(_step(count=3), attempt)
        assert outcome.success
        assert attempt.await_count == 1
        sleep.assert_not_awaited()

    async def test_exhausts_budget(self, sleep):
        attempt = AsyncMock(return_value=StepOutcome.fail("flaky"))
        with pytest.raises(StepFailure) as exc_info:
            await RetryPolicy(sleep=sleep).run(_step(count=2, backoff=1.0), attempt)
        assert attempt.await_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.outcome.failure_reason == "flaky"
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 1.0]

    async def test_success_after_failures(self, sleep):
        attempt = AsyncMock(side_effect=[StepOutcome.fail("a"), StepOutcome.ok("/out")])
        outcome = await RetryPolicy(sleep=sleep).run(_step(count=2), attempt)
        assert outcome.artifact_path == "/out"
        assert attempt.await_count == 2
        assert sleep.await_count == 1

    async def test_unsupported_type_spends_full_budget(self, sleep):
        attempt = AsyncMock(return_value=StepOutcome.fail("unsupported step type"))
        with pytest.raises(StepFailure) as exc_info:
            await RetryPolicy(sleep=sleep).run(_step(count=2, backoff=1.0), attempt)
        assert attempt.await_count == 3
        assert exc_info.value.attempts == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 1.0]

    async def test_zero_count_means_single_attempt(self, sleep):
        attempt = AsyncMock(return_value=StepOutcome.fail("nope"))
        with pytest.raises(StepFailure):
            await RetryPolicy(sleep=sleep).run(_step(count=0), attempt)
        assert attempt.await_count == 1

    async def test_real_backoff_spacing(self):
        import time

        stamps = []

        async def attempt():
            stamps.append(time.monotonic())
            return StepOutcome.fail("again")

        with pytest.raises(StepFailure):
            await RetryPolicy().run(_step(count=2, backoff=0.2), attempt)
        assert len(stamps) == 3
        assert stamps[1] - stamps[0] >= 0.19
        assert stamps[2] - stamps[1] >= 0.19
