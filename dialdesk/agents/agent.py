"""
LLMAgent - runs one agent turn against the model and yields fragments.

A turn is a single streaming completion. Content deltas become
TextFragments as they arrive; when the stream finishes, each tool call the
model made becomes either a HandoffDirective (transfer_to_agent) or a
ToolRequest, in the order the model produced them.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from ..constants import DEFAULT_LLM_MAX_RETRIES, DEFAULT_LLM_RETRY_BASE_DELAY
from ..errors import AgentExecutionError
from ..protocols import LLMClientProtocol
from ..tools.models import ToolCall
from .registry import HANDOFF_TOOL_NAME, AgentSpec

logger = logging.getLogger(__name__)


@dataclass
class TextFragment:
    text: str


@dataclass
class ToolRequest:
    call: ToolCall


@dataclass
class HandoffDirective:
    """The agent asked to transfer the conversation. `target` is unvalidated."""
    call_id: str
    target: str
    reason: Optional[str] = None


AgentFragment = Union[TextFragment, ToolRequest, HandoffDirective]


def _is_fatal(error: Exception) -> bool:
    """Errors no retry can fix."""
    name = type(error).__name__.lower()
    return any(word in name for word in ("auth", "permission", "badrequest", "notfound"))


class LLMAgent:
    """
    Executes an AgentSpec with an LLM client.

    Failures that happen before the first chunk are retried with exponential
    backoff; once output has started, a failure ends the turn with
    AgentExecutionError so no streamed text is repeated.
    """

    def __init__(
        self,
        spec: AgentSpec,
        llm_client: LLMClientProtocol,
        max_retries: int = DEFAULT_LLM_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_LLM_RETRY_BASE_DELAY,
    ):
        self.spec = spec
        self.llm_client = llm_client
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    @property
    def identity(self):
        return self.spec.identity

    async def run(
        self,
        system_prompt: str,
        history: List[Dict[str, Any]],
        tool_schemas: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncIterator[AgentFragment]:
        messages = [{"role": "system", "content": system_prompt}, *history]
        attempt = 0
        while True:
            started = False
            try:
                async for chunk in self.llm_client.stream_completion(
                    messages=messages, tools=tool_schemas or None
                ):
                    started = True
                    if chunk.content:
                        yield TextFragment(chunk.content)
                    if chunk.tool_calls:
                        for call in chunk.tool_calls:
                            yield self._to_fragment(call)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if started or _is_fatal(e) or attempt >= self.max_retries:
                    logger.error(
                        f"[Agent] {self.spec.identity.value} model call failed: {e}",
                        exc_info=True,
                    )
                    raise AgentExecutionError(f"{type(e).__name__}: {e}") from e
                delay = self.retry_base_delay * (2 ** attempt)
                attempt += 1
                logger.warning(
                    f"[Agent] {self.spec.identity.value} model call failed ({e}), "
                    f"retrying in {delay}s (attempt {attempt}/{self.max_retries})"
                )
                await asyncio.sleep(delay)

    @staticmethod
    def _to_fragment(call: ToolCall) -> AgentFragment:
        if call.name == HANDOFF_TOOL_NAME:
            target = call.arguments.get("agent") or call.arguments.get("target") or ""
            return HandoffDirective(
                call_id=call.id,
                target=str(target),
                reason=call.arguments.get("reason"),
            )
        return ToolRequest(call)
