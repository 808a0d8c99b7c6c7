"""
DialDesk call-placement rate limit.

At most one call placement per issue within `cooldown_seconds`. The slot is
taken when a call is admitted, not when it completes, so a retry that
arrives while the first call is still in flight is rejected too. A call that
is short-circuited or rejected for bad input gives its slot back.
"""

import logging
import time
from typing import Callable, Dict, Optional

from ..constants import DEFAULT_CALL_COOLDOWN_SECONDS
from ..errors import CallRateLimited

logger = logging.getLogger(__name__)


class CallRateLimiter:
    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_CALL_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last_call_at: Dict[str, float] = {}

    def acquire(self, tool_name: str, issue_id: str) -> float:
        """
        Take the issue's call slot and return the time it was taken.

        Raises:
            CallRateLimited: a call was admitted for this issue within the
                cooldown window.
        """
        now = self._clock()
        self._prune(now)
        last = self._last_call_at.get(issue_id)
        if last is not None and now - last < self.cooldown_seconds:
            retry_after = self.cooldown_seconds - (now - last)
            logger.warning(
                f"[Tools] {tool_name} rate limited for issue {issue_id} "
                f"(retry in {retry_after:.1f}s)"
            )
            raise CallRateLimited(tool_name, issue_id, retry_after)
        self._last_call_at[issue_id] = now
        return now

    def release(self, issue_id: str, taken_at: Optional[float] = None) -> None:
        """Give back a slot whose call never reached the call service."""
        if taken_at is None or self._last_call_at.get(issue_id) == taken_at:
            self._last_call_at.pop(issue_id, None)

    def last_call_at(self, issue_id: str) -> Optional[float]:
        return self._last_call_at.get(issue_id)

    def _prune(self, now: float) -> None:
        expired = [
            issue_id for issue_id, at in self._last_call_at.items()
            if now - at >= self.cooldown_seconds
        ]
        for issue_id in expired:
            del self._last_call_at[issue_id]
