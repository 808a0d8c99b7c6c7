"""
DialDesk LiteLLM client.

One client covers every provider litellm routes to. The `llm.provider`
config value picks the model prefix and the fallback API-key env var.
"""

import json
import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional

from ..tools.models import ToolCall
from .base import BaseLLMClient, LLMConfig, StreamChunk

logger = logging.getLogger(__name__)

# provider -> (litellm model prefix, api key env var)
_PROVIDERS: Dict[str, tuple] = {
    "openai": ("", "OPENAI_API_KEY"),
    "anthropic": ("anthropic/", "ANTHROPIC_API_KEY"),
    "azure": ("azure/", "AZURE_OPENAI_API_KEY"),
    "gemini": ("gemini/", "GOOGLE_API_KEY"),
    "ollama": ("ollama/", None),
}


def litellm_model_name(provider: str, model: str) -> str:
    prefix, _ = _PROVIDERS.get(provider.lower(), ("", None))
    if prefix and model.startswith(prefix):
        return model
    return f"{prefix}{model}"


class ToolCallAccumulator:
    """
    Reassembles streamed tool-call deltas.

    Providers send each call's id and name once and its JSON arguments in
    fragments, keyed by the call's index within the turn.
    """

    def __init__(self):
        self._slots: Dict[int, Dict[str, str]] = {}

    def __bool__(self) -> bool:
        return bool(self._slots)

    def add(self, delta: Any) -> None:
        slot = self._slots.setdefault(delta.index, {"id": "", "name": "", "arguments": ""})
        if delta.id:
            slot["id"] = delta.id
        function = getattr(delta, "function", None)
        if function is not None:
            if function.name:
                slot["name"] = function.name
            if function.arguments:
                slot["arguments"] += function.arguments

    def calls(self) -> List[ToolCall]:
        return [self._to_call(self._slots[i]) for i in sorted(self._slots)]

    @staticmethod
    def _to_call(slot: Dict[str, str]) -> ToolCall:
        try:
            arguments = json.loads(slot["arguments"]) if slot["arguments"] else {}
        except json.JSONDecodeError:
            logger.warning(f"[LiteLLM] unparseable arguments for {slot['name']}: {slot['arguments'][:100]}")
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        return ToolCall(id=slot["id"], name=slot["name"], arguments=arguments)


class LiteLLMClient(BaseLLMClient):
    """
    Streams completions through litellm.acompletion(stream=True).

    Example:
        client = LiteLLMClient(LLMConfig(model="gpt-4o-mini"), provider_name="openai")
        async for chunk in client.stream_completion(messages):
            print(chunk.content, end="")
    """

    def __init__(self, config: LLMConfig, provider_name: str = "openai"):
        super().__init__(config)
        self.provider = provider_name.lower()
        self.model = litellm_model_name(self.provider, config.model)

        api_key = config.api_key
        if not api_key:
            _, env_var = _PROVIDERS.get(self.provider, ("", None))
            api_key = os.environ.get(env_var) if env_var else None

        self._connection: Dict[str, Any] = {}
        if api_key:
            self._connection["api_key"] = api_key
        if config.base_url:
            self._connection["api_base"] = config.base_url
        if config.max_retries:
            self._connection["num_retries"] = config.max_retries

        logger.info(f"[LiteLLM] client ready: provider={self.provider}, model={self.model}")

    async def _stream_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        params: Dict[str, Any],
    ) -> AsyncIterator[StreamChunk]:
        import litellm

        request: Dict[str, Any] = {
            "model": params.pop("model", None) or self.model,
            "messages": messages,
            "stream": True,
            **params,
            **self._connection,
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        logger.debug(
            f"[LiteLLM] request model={request['model']} messages={len(messages)} "
            f"tools={len(tools) if tools else 0}"
        )
        response = await litellm.acompletion(**request)

        pending = ToolCallAccumulator()
        async for raw in response:
            if not raw.choices:
                continue
            choice = raw.choices[0]
            delta = choice.delta
            for tool_delta in getattr(delta, "tool_calls", None) or []:
                pending.add(tool_delta)

            content = getattr(delta, "content", None) or ""
            if choice.finish_reason is None:
                if content:
                    yield StreamChunk(content=content)
                continue

            yield StreamChunk(
                content=content,
                tool_calls=pending.calls() if pending else None,
                is_final=True,
                finish_reason=choice.finish_reason,
            )
