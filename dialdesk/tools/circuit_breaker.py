"""
DialDesk Circuit Breaker - per-tool failure isolation.

States:
  CLOSED     normal operation; consecutive failures are counted
  OPEN       the tool is failing; calls short-circuit with CircuitOpenError
  HALF_OPEN  cool-down elapsed; exactly one probe call is let through

Opens after `failure_threshold` consecutive failures and stays open for
`cooldown_seconds`. A successful probe closes the breaker and zeroes the
count; a failed probe reopens it and restarts the cool-down.

State lives in memory for the lifetime of the process and is shared by
every run the process serves. Each tool has its own asyncio.Lock, so state
transitions for one tool are serialized while the tool call itself runs
outside the lock.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ..constants import DEFAULT_BREAKER_COOLDOWN_SECONDS, DEFAULT_FAILURE_THRESHOLD
from ..errors import CircuitOpenError, ToolInputError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass
class CircuitBreakerState:
    """Breaker bookkeeping for one tool."""
    consecutive_failures: int = 0
    state: BreakerState = BreakerState.CLOSED
    last_failure_at: Optional[float] = None
    last_error: Optional[str] = None
    opened_at: Optional[float] = None
    probe_in_flight: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consecutive_failures": self.consecutive_failures,
            "state": self.state.value,
            "last_failure_at": self.last_failure_at,
            "last_error": self.last_error,
        }


class CircuitBreaker:
    """
    Wraps tool invocations with per-tool open/half-open/closed tracking.

    Example:
        breaker = CircuitBreaker(failure_threshold=3, cooldown_seconds=60)
        result = await breaker.invoke("web_search", search, args, context)
    """

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_seconds: float = DEFAULT_BREAKER_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._states: Dict[str, CircuitBreakerState] = {}

    def state_for(self, tool_name: str) -> CircuitBreakerState:
        """Return the tool's state, creating it on first use."""
        state = self._states.get(tool_name)
        if state is None:
            state = CircuitBreakerState()
            self._states[tool_name] = state
        return state

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {name: state.to_dict() for name, state in self._states.items()}

    def degraded_tools(self) -> List[str]:
        """Tools whose consecutive failures reached the threshold."""
        return sorted(
            name for name, state in self._states.items()
            if state.consecutive_failures >= self.failure_threshold
        )

    async def invoke(
        self,
        tool_name: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Call func(*args, **kwargs) unless the tool's breaker is open.

        Raises:
            CircuitOpenError: the breaker is open, or a half-open probe is
                already in flight. func is not called.
            ToolInputError: raised by func for unusable input; not counted.
            Exception: whatever func raised, after it was counted.
        """
        state = self.state_for(tool_name)

        async with state.lock:
            self._admit(tool_name, state)

        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            # A cancelled probe proves nothing; let the next caller probe.
            async with state.lock:
                state.probe_in_flight = False
            raise
        except ToolInputError:
            # Rejected before reaching the tool's backend; not a failure.
            async with state.lock:
                state.probe_in_flight = False
            raise
        except Exception as e:
            async with state.lock:
                self._record_failure(tool_name, state, e)
            raise

        async with state.lock:
            self._record_success(tool_name, state)
        return result

    def _admit(self, tool_name: str, state: CircuitBreakerState) -> None:
        if state.state == BreakerState.OPEN:
            elapsed = self._clock() - (state.opened_at or 0.0)
            if elapsed < self.cooldown_seconds:
                raise CircuitOpenError(tool_name, state.consecutive_failures, state.last_error)
            state.state = BreakerState.HALF_OPEN
            state.probe_in_flight = False
            logger.info(f"[Breaker] {tool_name}: cool-down elapsed, half-open")

        if state.state == BreakerState.HALF_OPEN:
            if state.probe_in_flight:
                raise CircuitOpenError(tool_name, state.consecutive_failures, state.last_error)
            state.probe_in_flight = True

    def _record_failure(self, tool_name: str, state: CircuitBreakerState, error: Exception) -> None:
        now = self._clock()
        state.consecutive_failures += 1
        state.last_failure_at = now
        state.last_error = str(error) or type(error).__name__

        if state.state == BreakerState.HALF_OPEN:
            state.state = BreakerState.OPEN
            state.opened_at = now
            state.probe_in_flight = False
            logger.warning(f"[Breaker] {tool_name}: probe failed, reopened ({state.last_error})")
        elif state.consecutive_failures >= self.failure_threshold:
            state.state = BreakerState.OPEN
            state.opened_at = now
            logger.warning(
                f"[Breaker] {tool_name}: OPEN after "
                f"{state.consecutive_failures} consecutive failures ({state.last_error})"
            )

    def _record_success(self, tool_name: str, state: CircuitBreakerState) -> None:
        if state.state != BreakerState.CLOSED:
            logger.info(f"[Breaker] {tool_name}: probe succeeded, closed")
        state.state = BreakerState.CLOSED
        state.consecutive_failures = 0
        state.opened_at = None
        state.probe_in_flight = False
