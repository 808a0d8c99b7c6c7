"""
DialDesk Tools - tool definitions and the gateway that executes them

Every call goes through ToolExecutor, which applies the per-issue call
rate limit, the per-tool circuit breaker and a timeout.
"""

from .circuit_breaker import BreakerState, CircuitBreaker, CircuitBreakerState
from .executor import ToolExecutor, redact_arguments
from .models import ToolCall, ToolCategory, ToolDefinition, ToolExecutionContext, ToolResult
from .rate_limit import CallRateLimiter
from .registry import ToolRegistry
from .search import build_search_tool
from .start_call import StartCallContext, build_start_call_tool, enrich_call_context

__all__ = [
    "BreakerState",
    "CircuitBreaker",
    "CircuitBreakerState",
    "ToolExecutor",
    "redact_arguments",
    "ToolCall",
    "ToolCategory",
    "ToolDefinition",
    "ToolExecutionContext",
    "ToolResult",
    "CallRateLimiter",
    "ToolRegistry",
    "build_search_tool",
    "StartCallContext",
    "build_start_call_tool",
    "enrich_call_context",
]
