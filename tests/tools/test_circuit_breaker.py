"""
Tests for the per-tool circuit breaker.

Tests:
- Opening after N consecutive failures
- Short-circuiting while open
- Single half-open probe under concurrency
- Probe success / failure transitions
- Input rejections left uncounted
"""

import asyncio

import pytest

from dialdesk.errors import CircuitOpenError, ToolExecutionError, ToolInputError
from dialdesk.tools.circuit_breaker import BreakerState, CircuitBreaker


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingTool:
    """Async callable that fails until told otherwise."""

    def __init__(self, fail: bool = True):
        self.fail = fail
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.fail:
            raise ToolExecutionError("search", "upstream 500")
        return {"ok": True}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(failure_threshold=3, cooldown_seconds=60, clock=clock)


async def _fail_times(breaker, tool, n):
    for _ in range(n):
        with pytest.raises(ToolExecutionError):
            await breaker.invoke("search", tool)


class TestOpening:

    @pytest.mark.asyncio
    async def test_failures_below_threshold_propagate(self, breaker):
        tool = CountingTool()
        await _fail_times(breaker, tool, 2)
        assert breaker.state_for("search").state == BreakerState.CLOSED
        assert breaker.state_for("search").consecutive_failures == 2

    @pytest.mark.asyncio
    async def test_opens_after_threshold_and_short_circuits(self, breaker):
        tool = CountingTool()
        await _fail_times(breaker, tool, 3)
        assert breaker.state_for("search").state == BreakerState.OPEN

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.invoke("search", tool)
        assert tool.calls == 3
        assert exc_info.value.tool_name == "search"
        assert exc_info.value.failure_count == 3
        assert "upstream 500" in exc_info.value.last_error

    @pytest.mark.asyncio
    async def test_success_resets_count(self, breaker):
        tool = CountingTool()
        await _fail_times(breaker, tool, 2)
        tool.fail = False
        assert await breaker.invoke("search", tool) == {"ok": True}
        assert breaker.state_for("search").consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_tools_are_isolated(self, breaker):
        await _fail_times(breaker, CountingTool(), 3)
        other = CountingTool(fail=False)
        assert await breaker.invoke("start_call", other) == {"ok": True}

    @pytest.mark.asyncio
    async def test_degraded_tools(self, breaker):
        await _fail_times(breaker, CountingTool(), 3)
        assert breaker.degraded_tools() == ["search"]

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreaker(failure_threshold=0)


class TestHalfOpen:

    @pytest.mark.asyncio
    async def test_still_open_before_cooldown(self, breaker, clock):
        tool = CountingTool()
        await _fail_times(breaker, tool, 3)
        clock.advance(59)
        with pytest.raises(CircuitOpenError):
            await breaker.invoke("search", tool)
        assert tool.calls == 3

    @pytest.mark.asyncio
    async def test_probe_success_closes(self, breaker, clock):
        tool = CountingTool()
        await _fail_times(breaker, tool, 3)
        clock.advance(60)
        tool.fail = False
        assert await breaker.invoke("search", tool) == {"ok": True}
        state = breaker.state_for("search")
        assert state.state == BreakerState.CLOSED
        assert state.consecutive_failures == 0
        assert breaker.degraded_tools() == []

    @pytest.mark.asyncio
    async def test_probe_failure_reopens(self, breaker, clock):
        tool = CountingTool()
        await _fail_times(breaker, tool, 3)
        clock.advance(61)
        await _fail_times(breaker, tool, 1)
        assert breaker.state_for("search").state == BreakerState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.invoke("search", tool)
        assert tool.calls == 4

    @pytest.mark.asyncio
    async def test_exactly_one_probe_under_concurrency(self, breaker, clock):
        await _fail_times(breaker, CountingTool(), 3)
        clock.advance(60)

        release = asyncio.Event()
        probe_calls = 0

        async def slow_probe():
            nonlocal probe_calls
            probe_calls += 1
            await release.wait()
            return "probed"

        probe = asyncio.create_task(breaker.invoke("search", slow_probe))
        await asyncio.sleep(0)

        results = await asyncio.gather(
            *[breaker.invoke("search", slow_probe) for _ in range(5)],
            return_exceptions=True,
        )
        assert all(isinstance(r, CircuitOpenError) for r in results)

        release.set()
        assert await probe == "probed"
        assert probe_calls == 1
        assert breaker.state_for("search").state == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_probe_frees_slot(self, breaker, clock):
        await _fail_times(breaker, CountingTool(), 3)
        clock.advance(60)

        async def hang():
            await asyncio.sleep(3600)

        probe = asyncio.create_task(breaker.invoke("search", hang))
        await asyncio.sleep(0)
        probe.cancel()
        with pytest.raises(asyncio.CancelledError):
            await probe

        assert breaker.state_for("search").probe_in_flight is False
        tool = CountingTool(fail=False)
        assert await breaker.invoke("search", tool) == {"ok": True}


class TestInputErrors:

    @staticmethod
    async def reject():
        raise ToolInputError("start_call", "Invalid call context: Field required")

    @pytest.mark.asyncio
    async def test_input_errors_do_not_open(self, breaker):
        for _ in range(5):
            with pytest.raises(ToolInputError):
                await breaker.invoke("start_call", self.reject)
        state = breaker.state_for("start_call")
        assert state.consecutive_failures == 0
        assert state.state == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_rejected_half_open_call_frees_slot(self, breaker, clock):
        await _fail_times(breaker, CountingTool(), 3)
        clock.advance(60)
        with pytest.raises(ToolInputError):
            await breaker.invoke("search", self.reject)
        state = breaker.state_for("search")
        assert state.probe_in_flight is False
        assert state.consecutive_failures == 3
        assert await breaker.invoke("search", CountingTool(fail=False)) == {"ok": True}
