"""
DialDesk Orchestrator Models - configuration and per-run state

This module defines:
- OrchestratorConfig: tunable run policy
- RunStatus: terminal / non-terminal run states
- HandoffRecord, ToolCallRecord: what happened during a run
- RunState: the in-memory state one run owns
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..agents.registry import AgentIdentity
from ..constants import (
    DEFAULT_LLM_MAX_RETRIES,
    DEFAULT_LLM_RETRY_BASE_DELAY,
    DEFAULT_MAX_HOPS,
    DEFAULT_MAX_TOOL_ROUNDS,
)


@dataclass
class OrchestratorConfig:
    """All orchestration policy in one place."""

    max_hops: int = DEFAULT_MAX_HOPS
    """Maximum handoffs in one run before it fails with RoutingLoopExceeded."""
    max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS
    """Tool-result feedback rounds per agent turn before a final no-tool call."""
    keyword_routing: bool = True
    """Pre-route each run with the keyword intent router."""
    llm_max_retries: int = DEFAULT_LLM_MAX_RETRIES
    """Retries for a model call that fails before producing output."""
    llm_retry_base_delay: float = DEFAULT_LLM_RETRY_BASE_DELAY
    """Retry base delay in seconds (exponential back-off)."""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrchestratorConfig":
        """Create from dictionary"""
        return cls(
            max_hops=data.get("max_hops", DEFAULT_MAX_HOPS),
            max_tool_rounds=data.get("max_tool_rounds", DEFAULT_MAX_TOOL_ROUNDS),
            keyword_routing=data.get("keyword_routing", True),
            llm_max_retries=data.get("llm_max_retries", DEFAULT_LLM_MAX_RETRIES),
            llm_retry_base_delay=data.get("llm_retry_base_delay", DEFAULT_LLM_RETRY_BASE_DELAY),
        )


class RunStatus(str, Enum):
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class HandoffRecord:
    from_agent: AgentIdentity
    to_agent: AgentIdentity
    reason: Optional[str] = None
    source: str = "agent"       # "agent" or "keyword"


@dataclass
class ToolCallRecord:
    """Record of a single tool call within a run."""
    call_id: str
    name: str
    agent: AgentIdentity
    success: bool
    error: Optional[str] = None


@dataclass
class RunState:
    """
    State owned by one orchestration run.

    `history` is the chat-completion message list the active agent sees; it
    starts from the normalized request messages and grows with assistant
    turns, tool calls and tool results.
    """
    active_agent: AgentIdentity
    history: List[Dict[str, Any]]
    issue_id: Optional[str] = None
    status: RunStatus = RunStatus.RUNNING
    hops: int = 0
    handoffs: List[HandoffRecord] = field(default_factory=list)
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    failure_reason: Optional[str] = None
    # last transcript append; each new append waits on it
    transcript_tail: Optional["asyncio.Task[None]"] = field(default=None, repr=False)

    @property
    def finished(self) -> bool:
        return self.status != RunStatus.RUNNING
