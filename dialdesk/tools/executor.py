"""
DialDesk Tool Executor - the gateway every tool call goes through.

Order of checks for one call:
  1. the tool exists and the active agent may use it
  2. call-placement tools take the issue's rate-limit slot; it is handed
     back if the breaker short-circuits or the tool rejects its input
  3. the circuit breaker admits the call
  4. the tool runs under a timeout

Every outcome, including failures, comes back as a ToolResult; tool errors
never propagate to the orchestrator. Cancellation does propagate.
"""

import asyncio
import json
import logging
from typing import Any, Collection, Dict, Optional

from ..constants import DEFAULT_TOOL_TIMEOUT_SECONDS, SECRET_ARG_KEYS
from ..errors import (
    CallRateLimited,
    CircuitOpenError,
    ToolError,
    ToolInputError,
    ToolTimeoutError,
)
from .circuit_breaker import CircuitBreaker
from .models import ToolCall, ToolDefinition, ToolExecutionContext, ToolResult
from .rate_limit import CallRateLimiter
from .registry import ToolRegistry

logger = logging.getLogger(__name__)


def redact_arguments(arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of tool arguments with secret-bearing keys masked, recursively."""
    redacted: Dict[str, Any] = {}
    for key, value in arguments.items():
        if key in SECRET_ARG_KEYS:
            redacted[key] = "***"
        elif isinstance(value, dict):
            redacted[key] = redact_arguments(value)
        else:
            redacted[key] = value
    return redacted


class ToolExecutor:
    """
    Executes tool calls for the orchestrator.

    Usage:
        executor = ToolExecutor(registry, breaker=CircuitBreaker(), rate_limiter=CallRateLimiter())
        result = await executor.execute(tool_call, context, allowed=["web_search"])
    """

    def __init__(
        self,
        registry: ToolRegistry,
        breaker: Optional[CircuitBreaker] = None,
        rate_limiter: Optional[CallRateLimiter] = None,
        timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
    ):
        self.registry = registry
        self.breaker = breaker or CircuitBreaker()
        self.rate_limiter = rate_limiter or CallRateLimiter()
        self.timeout = timeout

    async def execute(
        self,
        tool_call: ToolCall,
        context: ToolExecutionContext,
        allowed: Optional[Collection[str]] = None,
    ) -> ToolResult:
        """Run one tool call and always return a ToolResult."""
        tool = self.registry.get_tool(tool_call.name)
        if tool is None or (allowed is not None and tool_call.name not in allowed):
            logger.warning(f"[Tools] unavailable tool requested: {tool_call.name}")
            return self._error(tool_call, f"Unknown tool '{tool_call.name}'")

        logger.info(
            f"[Tools] executing {tool_call.name} "
            f"args={json.dumps(redact_arguments(tool_call.arguments), ensure_ascii=False)[:200]}"
        )

        slot = None
        try:
            if tool.places_call and context.issue_id:
                slot = self.rate_limiter.acquire(tool.name, context.issue_id)
            result = await self.breaker.invoke(
                tool.name, self._execute_with_timeout, tool, tool_call.arguments, context
            )
        except CallRateLimited as e:
            return self._error(tool_call, str(e))
        except (CircuitOpenError, ToolInputError) as e:
            if slot is not None:
                self.rate_limiter.release(context.issue_id, slot)
            logger.warning(f"[Tools] {tool_call.name} not run: {e}")
            return self._error(tool_call, str(e))
        except ToolError as e:
            logger.warning(f"[Tools] {tool_call.name} failed: {e}")
            return self._error(tool_call, str(e))
        except Exception as e:
            logger.error(f"[Tools] {tool_call.name} raised unexpectedly: {e}", exc_info=True)
            return self._error(tool_call, f"Error executing {tool_call.name}: {e}")

        if isinstance(result, (dict, list)):
            content = json.dumps(result, ensure_ascii=False, indent=2)
        else:
            content = str(result)

        logger.info(f"[Tools] {tool_call.name} succeeded")
        return ToolResult(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            content=content,
            data=result,
        )

    async def _execute_with_timeout(
        self,
        tool: ToolDefinition,
        arguments: Dict[str, Any],
        context: ToolExecutionContext,
    ) -> Any:
        try:
            return await asyncio.wait_for(tool.executor(arguments, context), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ToolTimeoutError(tool.name, self.timeout)

    @staticmethod
    def _error(tool_call: ToolCall, message: str) -> ToolResult:
        return ToolResult(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            content=f"Error: {message}",
            is_error=True,
            error=message,
        )
