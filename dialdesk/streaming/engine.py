"""
DialDesk Streaming Engine - paces orchestration events onto the wire

This module provides:
- TextBuffer: coalesces consecutive text deltas from the same agent
- FlushTicker: the fixed-interval flush timer for buffered text
- StreamPipeline: producer/consumer relay from an event iterator to SSE frames

Invariants kept by StreamPipeline.relay():
- text deltas are buffered and flushed at most once per tick
- any non-text event first flushes buffered text, then goes out unbuffered
- relative order of events is never changed
- the terminal sentinel is sent exactly once, after a normal or failed run
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from ..constants import DEFAULT_CHANNEL_SIZE, DEFAULT_FLUSH_INTERVAL_SECONDS
from .models import (
    SSE_SENTINEL,
    OrchestrationEvent,
    create_error,
    create_text_delta,
    encode_sse,
)

logger = logging.getLogger(__name__)

# Marks the end of the producer's event sequence inside the channel
_END_OF_STREAM = object()


@dataclass
class StreamingConfig:
    """
    Attributes:
        flush_interval_ms: How often buffered text is flushed (16ms ~ 60 Hz)
        channel_size: Bound of the producer -> consumer channel
    """
    flush_interval_ms: float = DEFAULT_FLUSH_INTERVAL_SECONDS * 1000
    channel_size: int = DEFAULT_CHANNEL_SIZE

    @property
    def flush_interval(self) -> float:
        return self.flush_interval_ms / 1000.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamingConfig":
        return cls(
            flush_interval_ms=data.get("flush_interval_ms", DEFAULT_FLUSH_INTERVAL_SECONDS * 1000),
            channel_size=data.get("channel_size", DEFAULT_CHANNEL_SIZE),
        )


@dataclass
class TextBuffer:
    """Pending text deltas, all from the same agent."""

    parts: List[str] = field(default_factory=list)
    agent: Optional[str] = None

    def add(self, event: OrchestrationEvent) -> None:
        self.parts.append(event.data.get("value", ""))
        self.agent = event.agent

    def accepts(self, event: OrchestrationEvent) -> bool:
        return not self.parts or event.agent == self.agent

    def drain(self) -> Optional[OrchestrationEvent]:
        """Return one coalesced text delta and empty the buffer."""
        if not self.parts:
            return None
        text = "".join(self.parts)
        agent = self.agent
        self.parts = []
        self.agent = None
        if not text:
            return None
        return create_text_delta(text, agent=agent)

    def __len__(self) -> int:
        return sum(len(p) for p in self.parts)

    def __bool__(self) -> bool:
        return bool(self.parts)


class FlushTicker:
    """
    Fixed-interval flush timer.

    Armed when the first fragment lands in an empty buffer; due one interval
    later. Disarmed by every flush.
    """

    def __init__(self, interval: float, clock: Optional[Callable[[], float]] = None):
        self.interval = interval
        self._clock = clock
        self._deadline: Optional[float] = None

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    @property
    def armed(self) -> bool:
        return self._deadline is not None

    def arm(self) -> None:
        if self._deadline is None:
            self._deadline = self._now() + self.interval

    def disarm(self) -> None:
        self._deadline = None

    def remaining(self) -> Optional[float]:
        """Seconds until due; None when not armed."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._now())

    def due(self) -> bool:
        return self._deadline is not None and self._now() >= self._deadline


class StreamPipeline:
    """
    Relays orchestration events to the client as SSE frames.

    The event iterator runs in its own producer task and pushes into a
    bounded asyncio.Queue; relay() consumes it. When the consumer goes away
    (client disconnect closes the response iterator) the producer task is
    cancelled, which cancels any in-flight model or tool call.

    Example:
        pipeline = StreamPipeline(StreamingConfig())
        return StreamingResponse(pipeline.relay(orchestrator.run(...)),
                                 media_type="text/event-stream")
    """

    def __init__(
        self,
        config: Optional[StreamingConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config or StreamingConfig()
        self._clock = clock

    async def relay(self, events: AsyncIterator[OrchestrationEvent]) -> AsyncIterator[str]:
        channel: asyncio.Queue = asyncio.Queue(maxsize=self.config.channel_size)
        producer = asyncio.create_task(self._produce(events, channel))
        buffer = TextBuffer()
        ticker = FlushTicker(self.config.flush_interval, clock=self._clock)
        sequence = 0
        finished = False

        def flush() -> Optional[str]:
            nonlocal sequence
            ticker.disarm()
            pending = buffer.drain()
            if pending is None:
                return None
            pending.sequence = sequence
            sequence += 1
            return encode_sse(pending)

        try:
            while True:
                try:
                    item = await asyncio.wait_for(channel.get(), timeout=ticker.remaining())
                except asyncio.TimeoutError:
                    frame = flush()
                    if frame:
                        yield frame
                    continue

                if item is _END_OF_STREAM:
                    break

                event: OrchestrationEvent = item
                if event.is_text:
                    if not buffer.accepts(event):
                        frame = flush()
                        if frame:
                            yield frame
                    buffer.add(event)
                    ticker.arm()
                    if ticker.due():
                        frame = flush()
                        if frame:
                            yield frame
                    continue

                frame = flush()
                if frame:
                    yield frame
                event.sequence = sequence
                sequence += 1
                yield encode_sse(event)

            frame = flush()
            if frame:
                yield frame
            finished = True
            yield SSE_SENTINEL
        finally:
            if not producer.done():
                producer.cancel()
            try:
                await producer
            except asyncio.CancelledError:
                pass
            if not finished:
                logger.info(
                    f"[Pipeline] stream closed early; discarded {len(buffer)} buffered chars"
                )

    @staticmethod
    async def _produce(events: AsyncIterator[OrchestrationEvent], channel: asyncio.Queue) -> None:
        try:
            async for event in events:
                await channel.put(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Pipeline] event producer failed: {e}", exc_info=True)
            await channel.put(create_error(f"Internal error: {e}", reason="internal_error"))
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()
        await channel.put(_END_OF_STREAM)
