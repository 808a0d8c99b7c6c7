"""
DialDesk Streaming Models - orchestration events and their wire format

This module defines:
- EventType: the closed set of client-visible event types
- OrchestrationEvent: one event, tagged by type
- create_* helpers used by the orchestrator
- encode_sse / SSE_SENTINEL for the server-sent-events transport
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..constants import STREAM_SENTINEL


class EventType(str, Enum):
    """Types of events streamed to the client"""
    TEXT_DELTA = "text-delta"
    AGENT_SWITCH = "agent-switch"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"
    ERROR = "error"
    DONE = "done"


@dataclass
class OrchestrationEvent:
    """
    One event produced by an orchestration run.

    Attributes:
        type: The type of event
        data: Type-specific payload (merged into the wire object)
        agent: Agent that was active when the event was produced
        timestamp: When the event occurred
        sequence: Position in the run's event order
    """
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    agent: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    sequence: int = 0

    @property
    def is_text(self) -> bool:
        return self.type == EventType.TEXT_DELTA

    def to_wire(self) -> Dict[str, Any]:
        """The JSON object sent to the client."""
        payload: Dict[str, Any] = {"type": self.type.value, **self.data}
        if self.type == EventType.TEXT_DELTA and self.agent:
            payload["agent"] = self.agent
        return payload

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.to_wire(),
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
        }


def create_text_delta(value: str, agent: Optional[str] = None) -> OrchestrationEvent:
    return OrchestrationEvent(type=EventType.TEXT_DELTA, data={"value": value}, agent=agent)


def create_agent_switch(from_agent: str, to_agent: str, name: Optional[str] = None) -> OrchestrationEvent:
    data = {"from": from_agent, "to": to_agent}
    if name:
        data["name"] = name
    return OrchestrationEvent(type=EventType.AGENT_SWITCH, data=data, agent=to_agent)


def create_tool_call(
    call_id: str, tool: str, args: Dict[str, Any], agent: Optional[str] = None
) -> OrchestrationEvent:
    return OrchestrationEvent(
        type=EventType.TOOL_CALL,
        data={"id": call_id, "tool": tool, "args": args},
        agent=agent,
    )


def create_tool_result(
    call_id: str,
    tool: str,
    ok: bool,
    data: Any = None,
    error: Optional[str] = None,
    agent: Optional[str] = None,
) -> OrchestrationEvent:
    payload: Dict[str, Any] = {"id": call_id, "tool": tool, "ok": ok}
    if ok:
        payload["data"] = data
    else:
        payload["error"] = error or "Tool failed"
    return OrchestrationEvent(type=EventType.TOOL_RESULT, data=payload, agent=agent)


def create_error(error: str, reason: Optional[str] = None, agent: Optional[str] = None) -> OrchestrationEvent:
    data = {"error": error}
    if reason:
        data["reason"] = reason
    return OrchestrationEvent(type=EventType.ERROR, data=data, agent=agent)


def create_done(agent: Optional[str] = None) -> OrchestrationEvent:
    return OrchestrationEvent(type=EventType.DONE, agent=agent)


# ── Wire format ──


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


def encode_sse(event: OrchestrationEvent) -> str:
    data = json.dumps(event.to_wire(), ensure_ascii=False, default=_json_default)
    return f"data: {data}\n\n"


SSE_SENTINEL = f"data: {STREAM_SENTINEL}\n\n"
