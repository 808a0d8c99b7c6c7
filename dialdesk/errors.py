"""
DialDesk exception hierarchy.

Input errors are raised before a stream opens. Tool errors are converted
into error ToolResults by the ToolExecutor and never end a run.
OrchestrationError subclasses end a run in the Failed state.
"""

from typing import Optional


class DialDeskError(Exception):
    """Base class for all DialDesk errors."""


class NoValidMessages(DialDeskError):
    """The chat history had no usable user message."""


# ── Tool gateway ──


class ToolError(DialDeskError):
    """Base class for errors raised at the tool gateway."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class ToolInputError(ToolError):
    """The caller supplied unusable arguments or secrets. Not a breaker failure."""


class ToolExecutionError(ToolError):
    """The tool ran and failed. Counts as a circuit-breaker failure."""


class ToolTimeoutError(ToolExecutionError):
    """The tool did not finish within its timeout."""

    def __init__(self, tool_name: str, timeout: float):
        super().__init__(tool_name, f"Tool '{tool_name}' timed out after {timeout}s")
        self.timeout = timeout


class CircuitOpenError(ToolError):
    """The breaker for this tool is open; the tool was not invoked."""

    def __init__(self, tool_name: str, failure_count: int, last_error: Optional[str] = None):
        message = (
            f"Tool '{tool_name}' is temporarily unavailable after "
            f"{failure_count} consecutive failures"
        )
        if last_error:
            message += f" (last error: {last_error})"
        super().__init__(tool_name, message)
        self.failure_count = failure_count
        self.last_error = last_error


class CallRateLimited(ToolError):
    """A call was already placed for this issue within the cooldown window."""

    def __init__(self, tool_name: str, issue_id: str, retry_after: float):
        super().__init__(
            tool_name,
            f"A call was already placed for issue {issue_id}; "
            f"retry in {retry_after:.0f}s",
        )
        self.issue_id = issue_id
        self.retry_after = retry_after


# ── Orchestration ──


class OrchestrationError(DialDeskError):
    """An error that ends a run in the Failed state."""

    reason = "internal_error"


class RoutingLoopExceeded(OrchestrationError):
    reason = "routing_loop_exceeded"

    def __init__(self, max_hops: int):
        super().__init__(f"Routing loop exceeded: more than {max_hops} handoffs in one run")
        self.max_hops = max_hops


class AgentExecutionError(OrchestrationError):
    """The underlying model call failed."""

    reason = "agent_failed"


class PersistenceError(DialDeskError):
    """A store read or write failed."""
