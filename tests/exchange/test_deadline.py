# tests/exchange/test_deadline.py
"""
Tests for DeadlineBudget (pure deadline arithmetic) and TimeoutController
(timers, cancellation token, guard, cleanup).
"""

import asyncio

import pytest

from roomrelay.exceptions import CancellationError
from roomrelay.exchange.deadline import DeadlineBudget, TimeoutController
from roomrelay.models import DeadlineKind

IDLE = 10.0


# =============================================================================
# DeadlineBudget
# =============================================================================


class TestDeadlineBudget:

    def test_begin(self):
        budget = DeadlineBudget.begin(100.0, IDLE)
        assert budget.idle_deadline == 110.0
        assert budget.hard_deadline == 115.0
        assert budget.next_deadline == 110.0

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            DeadlineBudget.begin(0.0, 0.0)
        with pytest.raises(ValueError):
            DeadlineBudget.begin(0.0, IDLE, hard_timeout_factor=0.5)

    def test_idle_floor_without_activity(self):
        """With no activity the idle deadline fires at exactly IDLE, not later."""
        budget = DeadlineBudget.begin(0.0, IDLE)
        assert budget.expired(IDLE - 0.001) is None
        assert budget.expired(IDLE) is DeadlineKind.IDLE

    def test_touch_pushes_idle_deadline_only(self):
        budget = DeadlineBudget.begin(0.0, IDLE).touched(4.0)
        assert budget.idle_deadline == 14.0
        assert budget.hard_deadline == 15.0
        assert budget.expired(13.0) is None

    def test_touch_never_moves_backwards(self):
        budget = DeadlineBudget.begin(0.0, IDLE).touched(5.0).touched(3.0)
        assert budget.last_activity == 5.0

    def test_hard_ceiling_under_constant_activity(self):
        """Activity every IDLE - eps can never push the exchange past 1.5 * IDLE."""
        eps = 0.5
        budget = DeadlineBudget.begin(0.0, IDLE)
        now = 0.0
        fired = None
        while fired is None:
            now = min(now + (IDLE - eps), budget.next_deadline)
            fired = budget.expired(now)
            if fired is None:
                budget = budget.touched(now)
        assert fired is DeadlineKind.HARD
        assert now <= 1.5 * IDLE

    def test_earlier_deadline_wins_when_both_elapsed(self):
        budget = DeadlineBudget.begin(0.0, IDLE).touched(9.0)
        # idle at 19, hard at 15: both elapsed at 20, hard came first
        assert budget.expired(20.0) is DeadlineKind.HARD
        fresh = DeadlineBudget.begin(0.0, IDLE)
        # idle at 10, hard at 15: idle came first
        assert fresh.expired(20.0) is DeadlineKind.IDLE

    def test_remaining(self):
        budget = DeadlineBudget.begin(0.0, IDLE)
        assert budget.remaining(4.0) == 6.0
        assert budget.remaining(50.0) == 0.0


# =============================================================================
# TimeoutController
# =============================================================================


class TestTimeoutController:

    @pytest.mark.asyncio
    async def test_idle_timeout_fires_without_activity(self):
        loop = asyncio.get_running_loop()
        async with TimeoutController(idle_timeout=0.05) as controller:
            start = loop.time()
            kind = await asyncio.wait_for(controller.wait_cancelled(), timeout=1.0)
            elapsed = loop.time() - start
        assert kind is DeadlineKind.IDLE
        assert controller.cancelled
        assert 0.04 <= elapsed < 0.5

    @pytest.mark.asyncio
    async def test_hard_timeout_caps_constant_activity(self):
        idle = 0.1
        loop = asyncio.get_running_loop()
        async with TimeoutController(idle_timeout=idle) as controller:
            start = loop.time()
            while not controller.cancelled:
                await asyncio.sleep(idle * 0.5)
                controller.on_activity()
            elapsed = loop.time() - start
        assert controller.expired_kind is DeadlineKind.HARD
        assert elapsed < 1.5 * idle + 0.1

    @pytest.mark.asyncio
    async def test_activity_after_cancel_is_ignored(self):
        async with TimeoutController(idle_timeout=0.02) as controller:
            await controller.wait_cancelled()
            controller.on_activity()
            assert not controller.timer_pending
            assert controller.cancelled

    @pytest.mark.asyncio
    async def test_timer_released_on_exit(self):
        async with TimeoutController(idle_timeout=5.0) as controller:
            assert controller.timer_pending
        assert not controller.timer_pending
        assert not controller.cancelled

    @pytest.mark.asyncio
    async def test_timer_released_when_body_raises(self):
        controller = TimeoutController(idle_timeout=5.0)
        with pytest.raises(RuntimeError):
            async with controller:
                raise RuntimeError("backend exploded")
        assert not controller.timer_pending

    @pytest.mark.asyncio
    async def test_remaining_budget(self):
        controller = TimeoutController(idle_timeout=5.0)
        assert controller.remaining == 0.0
        async with controller:
            assert 4.0 < controller.remaining <= 5.0
        cancelled = TimeoutController(idle_timeout=0.01)
        async with cancelled:
            await cancelled.wait_cancelled()
            assert cancelled.remaining == 0.0

    @pytest.mark.asyncio
    async def test_on_cancel_callback_runs_once(self):
        seen = []
        async with TimeoutController(idle_timeout=0.02) as controller:
            controller.on_cancel(seen.append)
            await controller.wait_cancelled()
            await asyncio.sleep(0.05)
        assert seen == [DeadlineKind.IDLE]


class TestGuard:

    @pytest.mark.asyncio
    async def test_returns_result_before_deadline(self):
        async def quick():
            return "done"

        async with TimeoutController(idle_timeout=1.0) as controller:
            assert await controller.guard(quick()) == "done"

    @pytest.mark.asyncio
    async def test_raises_and_cancels_pending_work(self):
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        async with TimeoutController(idle_timeout=0.03) as controller:
            with pytest.raises(CancellationError) as exc_info:
                await controller.guard(slow(), streaming=False)
        assert exc_info.value.deadline is DeadlineKind.IDLE
        assert exc_info.value.streaming is False
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_already_cancelled_raises_immediately(self):
        async def never_started():
            raise AssertionError("should not run")

        async with TimeoutController(idle_timeout=0.01) as controller:
            await controller.wait_cancelled()
            with pytest.raises(CancellationError):
                await controller.guard(never_started())

    @pytest.mark.asyncio
    async def test_propagates_work_errors(self):
        async def failing():
            raise ValueError("bad")

        async with TimeoutController(idle_timeout=1.0) as controller:
            with pytest.raises(ValueError):
                await controller.guard(failing())
