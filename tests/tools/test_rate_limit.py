"""Tests for the per-issue call-placement cooldown"""

import pytest

from dialdesk.errors import CallRateLimited
from dialdesk.tools.rate_limit import CallRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestCallRateLimiter:

    def test_first_call_admitted(self):
        limiter = CallRateLimiter(cooldown_seconds=60, clock=FakeClock())
        limiter.acquire("start_call", "issue-1")
        assert limiter.last_call_at("issue-1") == 0.0

    def test_second_call_within_cooldown_rejected(self):
        clock = FakeClock()
        limiter = CallRateLimiter(cooldown_seconds=60, clock=clock)
        limiter.acquire("start_call", "issue-1")
        clock.now = 10
        with pytest.raises(CallRateLimited) as exc_info:
            limiter.acquire("start_call", "issue-1")
        assert exc_info.value.issue_id == "issue-1"
        assert exc_info.value.retry_after == pytest.approx(50)

    def test_admitted_after_cooldown(self):
        clock = FakeClock()
        limiter = CallRateLimiter(cooldown_seconds=60, clock=clock)
        limiter.acquire("start_call", "issue-1")
        clock.now = 60
        limiter.acquire("start_call", "issue-1")
        assert limiter.last_call_at("issue-1") == 60

    def test_issues_are_independent(self):
        limiter = CallRateLimiter(cooldown_seconds=60, clock=FakeClock())
        limiter.acquire("start_call", "issue-1")
        limiter.acquire("start_call", "issue-2")

    def test_expired_entries_pruned(self):
        clock = FakeClock()
        limiter = CallRateLimiter(cooldown_seconds=60, clock=clock)
        limiter.acquire("start_call", "issue-1")
        clock.now = 120
        limiter.acquire("start_call", "issue-2")
        assert limiter.last_call_at("issue-1") is None

    def test_release_frees_slot(self):
        clock = FakeClock()
        limiter = CallRateLimiter(cooldown_seconds=60, clock=clock)
        taken = limiter.acquire("start_call", "issue-1")
        limiter.release("issue-1", taken)
        clock.now = 5
        limiter.acquire("start_call", "issue-1")
        assert limiter.last_call_at("issue-1") == 5

    def test_stale_release_keeps_newer_slot(self):
        clock = FakeClock()
        limiter = CallRateLimiter(cooldown_seconds=60, clock=clock)
        stale = limiter.acquire("start_call", "issue-1")
        clock.now = 70
        limiter.acquire("start_call", "issue-1")
        limiter.release("issue-1", stale)
        assert limiter.last_call_at("issue-1") == 70
