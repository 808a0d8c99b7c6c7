"""
DialDesk model client base.

- LLMConfig: the `llm` config section
- StreamChunk: one streamed piece of an assistant turn
- BaseLLMClient: shared request-parameter handling for streaming clients
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from typing import Any, AsyncIterator, Dict, List, Optional

from ..tools.models import ToolCall

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    """
    Model settings shared by every agent.

    Attributes:
        api_key: Provider key; when unset the provider's env var is used
        model: Model name without provider prefix (e.g. "gpt-4o-mini")
        base_url: Optional API base override
        temperature: Sampling temperature
        max_tokens: Completion token cap per agent turn
        timeout: Request timeout in seconds
        max_retries: Retries performed inside litellm itself
        extra: Provider-specific params passed through unchanged
    """
    api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    base_url: Optional[str] = None
    temperature: float = 0.3
    max_tokens: int = 1024
    timeout: int = 60
    max_retries: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LLMConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})


@dataclass
class StreamChunk:
    """
    A piece of a streamed assistant turn.

    Text arrives incrementally in `content`. Tool calls (including
    transfer_to_agent) are only reported once fully assembled, on the chunk
    that carries `is_final`.
    """
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    is_final: bool = False
    finish_reason: Optional[str] = None


class BaseLLMClient(ABC):
    """Streaming chat client. Subclasses implement `_stream_api`."""

    provider: str = "unknown"

    def __init__(self, config: LLMConfig):
        self.config = config

    @abstractmethod
    def _stream_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        params: Dict[str, Any],
    ) -> AsyncIterator[StreamChunk]:
        ...

    def _request_params(self, overrides: Dict[str, Any]) -> Dict[str, Any]:
        params = {
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "timeout": self.config.timeout,
            **self.config.extra,
        }
        params.update({k: v for k, v in overrides.items() if v is not None})
        return params

    async def stream_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        config: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream one assistant turn.

        `tools` are OpenAI-style function schemas. `config` and kwargs
        override the configured sampling parameters for this call only.
        """
        params = self._request_params({**(config or {}), **kwargs})
        started = time.monotonic()
        first = True
        async for chunk in self._stream_api(messages, tools, params):
            if first:
                first = False
                logger.debug(
                    f"[LLM] {self.provider} first chunk after "
                    f"{(time.monotonic() - started) * 1000:.0f}ms"
                )
            yield chunk

    async def close(self) -> None:
        """Release resources held by the client."""
