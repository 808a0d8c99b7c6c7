"""
DialDesk Streaming - orchestration events and the paced SSE relay

Usage:
    from dialdesk.streaming import StreamPipeline, StreamingConfig

    pipeline = StreamPipeline(StreamingConfig(flush_interval_ms=16))
    async for frame in pipeline.relay(orchestrator.run(messages, context)):
        await send(frame)
"""

from .engine import FlushTicker, StreamingConfig, StreamPipeline, TextBuffer
from .models import (
    SSE_SENTINEL,
    EventType,
    OrchestrationEvent,
    create_agent_switch,
    create_done,
    create_error,
    create_text_delta,
    create_tool_call,
    create_tool_result,
    encode_sse,
)

__all__ = [
    "FlushTicker",
    "StreamingConfig",
    "StreamPipeline",
    "TextBuffer",
    "SSE_SENTINEL",
    "EventType",
    "OrchestrationEvent",
    "create_agent_switch",
    "create_done",
    "create_error",
    "create_text_delta",
    "create_tool_call",
    "create_tool_result",
    "encode_sse",
]
