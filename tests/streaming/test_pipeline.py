"""
Tests for the streaming event pipeline.

Tests:
- Event wire format and SSE encoding
- Text coalescing and timer flushes
- Control events flush buffered text first
- Terminal sentinel exactly once
- Producer cancellation when the consumer leaves
"""

import asyncio
import json

import pytest

from dialdesk.streaming.engine import FlushTicker, StreamingConfig, StreamPipeline, TextBuffer
from dialdesk.streaming.models import (
    SSE_SENTINEL,
    EventType,
    create_agent_switch,
    create_done,
    create_error,
    create_text_delta,
    create_tool_call,
    create_tool_result,
    encode_sse,
)


def decode(frame):
    if frame == SSE_SENTINEL:
        return "[DONE]"
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):-2])


async def source(*events, delays=None):
    delays = delays or {}
    for i, event in enumerate(events):
        if i in delays:
            await asyncio.sleep(delays[i])
        yield event


async def relay_all(pipeline, events):
    return [decode(f) async for f in pipeline.relay(events)]


# Long enough that only control events / end of stream flush text
SLOW = StreamingConfig(flush_interval_ms=60_000)


class TestWireFormat:

    def test_text_delta(self):
        event = create_text_delta("Hi", agent="router")
        assert event.to_wire() == {"type": "text-delta", "value": "Hi", "agent": "router"}

    def test_agent_switch(self):
        event = create_agent_switch("router", "insurance", "Insurance Claims Specialist")
        assert event.to_wire() == {
            "type": "agent-switch",
            "from": "router",
            "to": "insurance",
            "name": "Insurance Claims Specialist",
        }

    def test_tool_result_failure(self):
        event = create_tool_result("c1", "web_search", ok=False, error="down")
        assert event.to_wire() == {
            "type": "tool-result", "id": "c1", "tool": "web_search", "ok": False, "error": "down",
        }

    def test_tool_call(self):
        event = create_tool_call("c1", "web_search", {"query": "x"})
        assert event.to_wire()["args"] == {"query": "x"}

    def test_done(self):
        assert create_done().to_wire() == {"type": "done"}

    def test_encode_sse(self):
        frame = encode_sse(create_error("boom", reason="agent_failed"))
        assert frame == 'data: {"type": "error", "error": "boom", "reason": "agent_failed"}\n\n'

    def test_sentinel(self):
        assert SSE_SENTINEL == "data: [DONE]\n\n"


class TestTextBuffer:

    def test_coalesces_same_agent(self):
        buffer = TextBuffer()
        buffer.add(create_text_delta("a", agent="x"))
        buffer.add(create_text_delta("b", agent="x"))
        assert len(buffer) == 2
        merged = buffer.drain()
        assert merged.data["value"] == "ab"
        assert merged.agent == "x"
        assert not buffer

    def test_rejects_other_agent(self):
        buffer = TextBuffer()
        buffer.add(create_text_delta("a", agent="x"))
        assert not buffer.accepts(create_text_delta("b", agent="y"))


class TestFlushTicker:

    def test_arm_and_due(self):
        now = [0.0]
        ticker = FlushTicker(0.016, clock=lambda: now[0])
        assert ticker.remaining() is None
        ticker.arm()
        assert ticker.remaining() == pytest.approx(0.016)
        now[0] = 0.010
        ticker.arm()  # already armed: deadline unchanged
        assert not ticker.due()
        now[0] = 0.020
        assert ticker.due()
        assert ticker.remaining() == 0.0
        ticker.disarm()
        assert not ticker.armed


class TestStreamPipeline:

    @pytest.mark.asyncio
    async def test_text_coalesced_until_end(self):
        frames = await relay_all(StreamPipeline(SLOW), source(
            create_text_delta("Hel", agent="router"),
            create_text_delta("lo", agent="router"),
            create_text_delta("!", agent="router"),
            create_done(agent="router"),
        ))
        assert frames == [
            {"type": "text-delta", "value": "Hello!", "agent": "router"},
            {"type": "done"},
            "[DONE]",
        ]

    @pytest.mark.asyncio
    async def test_control_event_flushes_text_first(self):
        frames = await relay_all(StreamPipeline(SLOW), source(
            create_text_delta("One sec.", agent="router"),
            create_agent_switch("router", "insurance", "Insurance Claims Specialist"),
            create_text_delta("Hi, ", agent="insurance"),
            create_text_delta("I can help.", agent="insurance"),
            create_done(agent="insurance"),
        ))
        types = [f["type"] if isinstance(f, dict) else f for f in frames]
        assert types == ["text-delta", "agent-switch", "text-delta", "done", "[DONE]"]
        assert frames[0]["value"] == "One sec."
        assert frames[2]["value"] == "Hi, I can help."

    @pytest.mark.asyncio
    async def test_agents_never_merged(self):
        frames = await relay_all(StreamPipeline(SLOW), source(
            create_text_delta("a", agent="router"),
            create_text_delta("b", agent="insurance"),
        ))
        assert frames[:2] == [
            {"type": "text-delta", "value": "a", "agent": "router"},
            {"type": "text-delta", "value": "b", "agent": "insurance"},
        ]

    @pytest.mark.asyncio
    async def test_timer_flushes_between_slow_fragments(self):
        pipeline = StreamPipeline(StreamingConfig(flush_interval_ms=10))
        frames = await relay_all(pipeline, source(
            create_text_delta("first", agent="router"),
            create_text_delta("second", agent="router"),
            create_done(),
            delays={1: 0.2},
        ))
        assert [f.get("value") for f in frames[:2]] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_sentinel_sent_once_at_end(self):
        frames = await relay_all(StreamPipeline(SLOW), source(
            create_text_delta("x", agent="router"),
            create_error("boom", reason="agent_failed"),
        ))
        assert frames.count("[DONE]") == 1
        assert frames[-1] == "[DONE]"
        assert frames[-2] == {"type": "error", "error": "boom", "reason": "agent_failed"}

    @pytest.mark.asyncio
    async def test_producer_exception_becomes_error_event(self):
        async def broken():
            yield create_text_delta("partial", agent="router")
            raise RuntimeError("kaput")

        frames = await relay_all(StreamPipeline(SLOW), broken())
        assert frames[0]["value"] == "partial"
        assert frames[1]["type"] == "error"
        assert frames[1]["reason"] == "internal_error"
        assert frames[-1] == "[DONE]"
        assert frames.count("[DONE]") == 1

    @pytest.mark.asyncio
    async def test_consumer_close_cancels_producer(self):
        closed = asyncio.Event()

        async def endless():
            try:
                yield create_agent_switch("router", "booking")
                await asyncio.Event().wait()
                yield create_done()
            finally:
                closed.set()

        relay = StreamPipeline(SLOW).relay(endless())
        first = decode(await relay.__anext__())
        assert first["type"] == EventType.AGENT_SWITCH.value
        await relay.aclose()
        assert closed.is_set()
